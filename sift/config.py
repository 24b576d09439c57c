"""Settings via pydantic-settings with SIFT_ env prefix.

Budget fraction and keep-last-N are caller-level knobs: the
reduction hook reads its defaults from here, but each call site may pass
its own values.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SIFT_", env_file=".env", extra="ignore")

    # Model selection
    model: str = "claude-sonnet-4-5"
    provider: str = "anthropic"
    system_prompt: str = "You are an AI operations agent working in a terminal."

    # Context budget
    budget_fraction: float = 0.8  # trimming activates above window * fraction
    keep_last_n_assistant_messages: int = 50
    max_output_tokens: int = 16000  # reserved for the completion
    default_context_window: int = 128_000  # for models missing from the registry

    # Normalization
    strip_checkpoint_markup: bool = True
    repair_tool_pairing: bool = False

    @model_validator(mode="after")
    def _validate_budget(self) -> "Settings":
        if not 0.0 < self.budget_fraction <= 1.0:
            raise ValueError(
                f"budget_fraction ({self.budget_fraction}) must be in (0, 1]"
            )
        if self.keep_last_n_assistant_messages < 0:
            raise ValueError("keep_last_n_assistant_messages must be >= 0")
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be > 0")
        if self.default_context_window <= 0:
            raise ValueError("default_context_window must be > 0")
        return self
