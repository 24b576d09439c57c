"""Before-inference hook -- turns session state into the request payload.

Per inference:
  1. Resolve the model's limits from the registry
  2. window = context_window - system prompt tokens - reserved output
  3. reduce_context(history, window, persisted metadata, active tools)
  4. Store the InferenceRequest and the new metadata on the state

Any failure raises ContextReductionError so the inference attempt fails
rather than sending an over-budget or malformed payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sift.config import Settings
from sift.context.providers import (
    Provider,
    ToolResultLayout,
    check_adjacency,
    layout_for,
)
from sift.context.tokens import estimate_tokens
from sift.context.trimmer import ReductionResult, reduce_context
from sift.models import Message, Role, ToolDefinition
from sift.runtime.checkpoints import Checkpoint
from sift.runtime.hooks import HookAction, LifecycleEvent
from sift.runtime.registry import ModelInfo, ModelRegistry

logger = logging.getLogger(__name__)


class ContextReductionError(RuntimeError):
    """Reduction failed; the inference attempt must not proceed."""


@dataclass
class InferenceRequest:
    """Payload handed to the model-invocation layer."""

    model: str
    messages: list[Message]
    max_tokens: int
    tools: list[ToolDefinition] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.tools:
            payload["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.input_schema,
                }
                for t in self.tools
            ]
        return payload


@dataclass
class AgentState:
    """Per-conversation state a request carries through its hooks."""

    session_id: str
    model: str
    messages: list[Message] = field(default_factory=list)
    tools: list[ToolDefinition] | None = None
    metadata: dict[str, Any] | None = None
    llm_input: InferenceRequest | None = None
    last_reduction: ReductionResult | None = None
    checkpoint_id: str | None = None

    @classmethod
    def from_checkpoint(
        cls,
        checkpoint: Checkpoint,
        model: str,
        tools: list[ToolDefinition] | None = None,
    ) -> AgentState:
        return cls(
            session_id=checkpoint.session_id,
            model=model,
            messages=list(checkpoint.messages),
            tools=tools,
            metadata=checkpoint.metadata,
            checkpoint_id=checkpoint.id,
        )

    def to_checkpoint(self) -> Checkpoint:
        """New checkpoint chained after the one this state was loaded from."""
        return Checkpoint(
            session_id=self.session_id,
            messages=list(self.messages),
            metadata=self.metadata,
            parent_id=self.checkpoint_id,
        )


class ContextReductionHook:
    """Reduces conversation history before every inference call.

    ``budget_fraction`` and ``keep_last_n`` default to the settings but
    are per-hook so different call sites (main agent, sub-agents) can
    protect different amounts of recent history.
    """

    name = "context_reduction"

    def __init__(
        self,
        settings: Settings,
        registry: ModelRegistry | None = None,
        *,
        system_prompt: str | None = None,
        budget_fraction: float | None = None,
        keep_last_n: int | None = None,
        priority: int = 0,
    ) -> None:
        self._settings = settings
        self._registry = registry or ModelRegistry(
            default_context_window=settings.default_context_window
        )
        self._system_prompt = (
            settings.system_prompt if system_prompt is None else system_prompt
        )
        self._budget_fraction = (
            settings.budget_fraction if budget_fraction is None else budget_fraction
        )
        self._keep_last_n = (
            settings.keep_last_n_assistant_messages if keep_last_n is None else keep_last_n
        )
        self.priority = priority

    def execute(self, state: AgentState, event: LifecycleEvent) -> HookAction:
        if event != LifecycleEvent.BEFORE_INFERENCE:
            return HookAction.proceed()

        model_info = self._registry.get(state.model)
        provider = self._resolve_provider(model_info)
        system_message = Message(Role.SYSTEM, self._system_prompt)
        reserved_output = self._reserved_output(model_info)
        window = self.compute_window(model_info, system_message, reserved_output)

        try:
            result = reduce_context(
                state.messages,
                window,
                state.metadata,
                state.tools,
                budget_fraction=self._budget_fraction,
                keep_last_n=self._keep_last_n,
                provider=provider,
                strip_markup=self._settings.strip_checkpoint_markup,
                repair_pairing=self._settings.repair_tool_pairing,
            )
        except Exception as e:
            logger.error("Context reduction failed for session %s: %s", state.session_id, e)
            raise ContextReductionError(f"Context reduction failed: {e}") from e

        if layout_for(provider) is ToolResultLayout.BATCHED:
            unmatched = check_adjacency(result.messages)
            if unmatched:
                logger.debug(
                    "Session %s: %d tool call(s) without adjacent results: %s",
                    state.session_id,
                    len(unmatched),
                    ", ".join(unmatched),
                )

        state.llm_input = InferenceRequest(
            model=state.model,
            messages=[system_message, *result.messages],
            max_tokens=reserved_output,
            tools=state.tools,
        )
        state.metadata = result.metadata
        state.last_reduction = result
        return HookAction.proceed()

    def compute_window(
        self,
        model_info: ModelInfo,
        system_message: Message,
        reserved_output: int,
    ) -> int:
        """Usable history window. Raises ContextReductionError if none is left."""
        system_tokens = estimate_tokens([system_message])
        window = model_info.context_window - system_tokens - reserved_output
        if window <= 0:
            raise ContextReductionError(
                f"No context left for history on {model_info.name}: "
                f"window={model_info.context_window}, system={system_tokens}, "
                f"reserved_output={reserved_output}"
            )
        return window

    def _reserved_output(self, model_info: ModelInfo) -> int:
        if model_info.max_output_tokens is None:
            return self._settings.max_output_tokens
        return min(self._settings.max_output_tokens, model_info.max_output_tokens)

    def _resolve_provider(self, model_info: ModelInfo) -> Provider:
        if model_info.provider is not Provider.UNKNOWN:
            return model_info.provider
        return Provider.parse(self._settings.provider)
