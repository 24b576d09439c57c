"""Provider-specific tool-result layout.

Anthropic rejects a tool_result unless it shares one message with every
other tool_result answering the same assistant turn. Other providers
accept (or require) one message per result. The difference is a small
enum selected by provider identity, applied as one pipeline stage, so
the trimmer never needs to know which provider it is feeding.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import assert_never

from sift.context.normalizer import SkippedMessage
from sift.models import (
    ContentPart,
    ImagePart,
    Message,
    Role,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

logger = logging.getLogger(__name__)


class Provider(StrEnum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GEMINI = "gemini"
    STAKPAK = "stakpak"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | Provider | None) -> Provider:
        if value is None:
            return cls.UNKNOWN
        try:
            return cls(str(value).lower())
        except ValueError:
            logger.debug("Unknown provider %r, using per-result layout", value)
            return cls.UNKNOWN


class ToolResultLayout(StrEnum):
    BATCHED = "batched"  # all results for one assistant turn in one message
    PER_RESULT = "per_result"


_LAYOUTS: dict[Provider, ToolResultLayout] = {
    Provider.ANTHROPIC: ToolResultLayout.BATCHED,
    Provider.OPENAI: ToolResultLayout.PER_RESULT,
    Provider.GEMINI: ToolResultLayout.PER_RESULT,
    Provider.STAKPAK: ToolResultLayout.PER_RESULT,
    Provider.UNKNOWN: ToolResultLayout.PER_RESULT,
}


def layout_for(provider: Provider) -> ToolResultLayout:
    return _LAYOUTS[provider]


def _tool_results(message: Message) -> list[ContentPart]:
    results: list[ContentPart] = []
    for part in message.parts:
        if isinstance(part, ToolResultPart):
            results.append(part)
        elif isinstance(part, (TextPart, ToolCallPart, ImagePart)):
            continue
        else:
            assert_never(part)
    return results


def merge_tool_results(
    messages: list[Message],
    skipped: list[SkippedMessage] | None = None,
) -> list[Message]:
    """Collapse each run of consecutive tool messages into one.

    The merged message holds every ToolResult part of the run, in
    original order. A run of one message with results is returned as
    is. Tool messages carrying no ToolResult at all are dropped; when
    ``skipped`` is given, each drop is recorded there.
    """
    result: list[Message] = []
    i = 0
    while i < len(messages):
        message = messages[i]
        if message.role != Role.TOOL:
            result.append(message)
            i += 1
            continue

        run_start = i
        parts: list[ContentPart] = []
        while i < len(messages) and messages[i].role == Role.TOOL:
            results = _tool_results(messages[i])
            if not results:
                logger.warning("Dropping tool message %d with no tool results", i)
                if skipped is not None:
                    skipped.append(SkippedMessage(i, Role.TOOL.value, "no tool results"))
            parts.extend(results)
            i += 1

        if not parts:
            continue
        if i - run_start == 1:
            result.append(message)
        else:
            result.append(Message(Role.TOOL, parts))
    return result


def apply_provider_layout(
    messages: list[Message],
    provider: Provider,
    skipped: list[SkippedMessage] | None = None,
) -> list[Message]:
    """Run the merger only for providers that need batched results."""
    layout = layout_for(provider)
    if layout is ToolResultLayout.BATCHED:
        return merge_tool_results(messages, skipped)
    if layout is ToolResultLayout.PER_RESULT:
        return messages
    assert_never(layout)


def check_adjacency(messages: list[Message]) -> list[str]:
    """Tool call ids whose results are not all in the next message."""
    unmatched: list[str] = []
    for idx, message in enumerate(messages):
        if message.role != Role.ASSISTANT:
            continue
        call_ids = message.tool_call_ids()
        if not call_ids:
            continue
        following = (
            set(messages[idx + 1].tool_result_ids()) if idx + 1 < len(messages) else set()
        )
        unmatched.extend(cid for cid in call_ids if cid not in following)
    return unmatched
