"""Model registry -- context window and output reservation per model."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from sift.context.providers import Provider

logger = logging.getLogger(__name__)


class ModelInfo(BaseModel):
    """Context limits for one model family."""

    name: str
    provider: Provider = Provider.UNKNOWN
    context_window: int = Field(gt=0)
    max_output_tokens: int | None = Field(default=None, gt=0)


# Prefix -> limits. Longest matching prefix wins.
DEFAULT_MODELS: list[ModelInfo] = [
    ModelInfo(name="claude-haiku", provider=Provider.ANTHROPIC, context_window=200_000, max_output_tokens=64_000),
    ModelInfo(name="claude-sonnet", provider=Provider.ANTHROPIC, context_window=1_000_000, max_output_tokens=64_000),
    ModelInfo(name="claude-opus", provider=Provider.ANTHROPIC, context_window=200_000, max_output_tokens=32_000),
    ModelInfo(name="gpt-", provider=Provider.OPENAI, context_window=128_000),
    ModelInfo(name="gemini-", provider=Provider.GEMINI, context_window=1_000_000),
]


class ModelRegistry:
    """Resolves a model id to its limits by prefix."""

    def __init__(
        self,
        models: list[ModelInfo] | None = None,
        default_context_window: int = 128_000,
    ) -> None:
        self._models: dict[str, ModelInfo] = {}
        self._default_context_window = default_context_window
        for info in DEFAULT_MODELS if models is None else models:
            self.register(info)

    def register(self, info: ModelInfo) -> None:
        self._models[info.name] = info

    def get(self, model: str) -> ModelInfo:
        """Limits for ``model``; unknown models get the default window."""
        matches = [name for name in self._models if model.startswith(name)]
        if matches:
            return self._models[max(matches, key=len)]
        logger.warning(
            "Model '%s' not in registry, assuming %d-token context window",
            model,
            self._default_context_window,
        )
        return ModelInfo(name=model, context_window=self._default_context_window)
