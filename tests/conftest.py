"""Shared test fixtures."""

import pytest

from sift.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        model="claude-sonnet-4-5",
        provider="anthropic",
        system_prompt="sys",
        budget_fraction=0.8,
        keep_last_n_assistant_messages=50,
        max_output_tokens=16000,
        default_context_window=128_000,
        strip_checkpoint_markup=True,
        repair_tool_pairing=False,
    )
