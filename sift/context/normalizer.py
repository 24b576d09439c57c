"""Message normalization -- raw turn history to a structurally valid list.

Passes, in order:
  1. Strip <checkpoint_id> bookkeeping markup from text
  2. Merge consecutive same-role messages
  3. Dedup tool results across the history (last occurrence wins)
  4. Drop messages left empty, re-merging turns brought together
  5. Optional pairing repair (dangling tool calls, orphaned results)

Every pass is pure and order-preserving: the same history always
normalizes to the same list, which is what keeps trim indices stable
across calls.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import assert_never

from sift.models import (
    ContentPart,
    ImagePart,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

logger = logging.getLogger(__name__)

_CHECKPOINT_TAG = re.compile(r"<checkpoint_id>.*?</checkpoint_id>", re.DOTALL)


@dataclass
class SkippedMessage:
    """A message dropped because it had no valid representation."""

    index: int
    role: str
    reason: str


@dataclass
class NormalizationReport:
    messages: list[Message]
    skipped: list[SkippedMessage] = field(default_factory=list)


# ------------------------------------------------------------------
# Markup stripping
# ------------------------------------------------------------------


def strip_checkpoint_markup(text: str) -> str:
    """Remove <checkpoint_id>...</checkpoint_id> blocks.

    Text without markup is returned untouched (no whitespace trim).
    """
    stripped, count = _CHECKPOINT_TAG.subn("", text)
    if not count:
        return text
    return stripped.strip()


def _strip_message_markup(message: Message) -> Message:
    if isinstance(message.content, str):
        return Message(message.role, strip_checkpoint_markup(message.content))

    parts: list[ContentPart] = []
    for part in message.content:
        if isinstance(part, TextPart):
            text = strip_checkpoint_markup(part.text)
            if text:
                parts.append(part if text == part.text else TextPart(text))
        elif isinstance(part, (ToolCallPart, ToolResultPart, ImagePart)):
            parts.append(part)
        else:
            assert_never(part)
    return Message(message.role, parts)


# ------------------------------------------------------------------
# Structural passes
# ------------------------------------------------------------------


def merge_consecutive_same_role(messages: list[Message]) -> list[Message]:
    """Concatenate runs of same-role messages into one message.

    A message that is not part of a run keeps its original content
    representation (string stays string).
    """
    merged: list[Message] = []
    for message in messages:
        if merged and merged[-1].role == message.role:
            previous = merged[-1]
            merged[-1] = Message(previous.role, previous.parts + message.parts)
        else:
            merged.append(message)
    return merged


def dedup_tool_results(messages: list[Message]) -> list[Message]:
    """Keep only the last ToolResult per tool_use_id across the history.

    Earlier occurrences are removed wherever they sit; a message left
    with no parts comes back empty for the caller to drop.
    """
    last_position: dict[str, tuple[int, int]] = {}
    for msg_idx, message in enumerate(messages):
        if isinstance(message.content, str):
            continue
        for pos, part in enumerate(message.content):
            if isinstance(part, ToolResultPart):
                last_position[part.tool_use_id] = (msg_idx, pos)

    result: list[Message] = []
    for msg_idx, message in enumerate(messages):
        if isinstance(message.content, str) or not message.tool_result_ids():
            result.append(message)
            continue
        kept = [
            part
            for pos, part in enumerate(message.content)
            if not isinstance(part, ToolResultPart)
            or last_position[part.tool_use_id] == (msg_idx, pos)
        ]
        if len(kept) == len(message.content):
            result.append(message)
            continue
        logger.debug(
            "Dropped %d superseded tool result(s) from message %d",
            len(message.content) - len(kept),
            msg_idx,
        )
        result.append(Message(message.role, kept))
    return result


def strip_dangling_tool_calls(messages: list[Message]) -> list[Message]:
    """Remove ToolCall parts whose results are not all in the next message."""
    result: list[Message] = []
    for idx, message in enumerate(messages):
        call_ids = message.tool_call_ids()
        if not call_ids:
            result.append(message)
            continue

        next_results = (
            set(messages[idx + 1].tool_result_ids()) if idx + 1 < len(messages) else set()
        )
        if next_results and all(cid in next_results for cid in call_ids):
            result.append(message)
            continue

        logger.warning(
            "Stripping %d dangling tool call(s) from message %d", len(call_ids), idx
        )
        kept = [p for p in message.parts if not isinstance(p, ToolCallPart)]
        result.append(Message(message.role, kept))
    return result


def remove_orphaned_tool_results(messages: list[Message]) -> list[Message]:
    """Remove ToolResult parts that answer no earlier ToolCall."""
    seen_calls: set[str] = set()
    result: list[Message] = []
    for message in messages:
        seen_calls.update(message.tool_call_ids())
        if isinstance(message.content, str):
            result.append(message)
            continue
        kept = [
            p
            for p in message.content
            if not isinstance(p, ToolResultPart) or p.tool_use_id in seen_calls
        ]
        if len(kept) != len(message.content):
            logger.warning(
                "Removed %d orphaned tool result(s)", len(message.content) - len(kept)
            )
            result.append(Message(message.role, kept))
        else:
            result.append(message)
    return result


def _drop_empty(
    messages: list[Message], skipped: list[SkippedMessage], reason: str
) -> list[Message]:
    kept: list[Message] = []
    for idx, message in enumerate(messages):
        if message.is_empty():
            skipped.append(SkippedMessage(idx, message.role.value, reason))
            continue
        kept.append(message)
    return kept


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def normalize_with_report(
    raw_history: list[Message],
    *,
    strip_markup: bool = True,
    repair_pairing: bool = False,
) -> NormalizationReport:
    """Normalize history and report every dropped message."""
    skipped: list[SkippedMessage] = []

    messages = list(raw_history)
    for item in messages:
        if not isinstance(item, Message):
            raise TypeError(f"Expected Message, got {type(item).__name__}")

    if strip_markup:
        messages = [_strip_message_markup(m) for m in messages]
    messages = _drop_empty(messages, skipped, "empty content")
    messages = merge_consecutive_same_role(messages)
    messages = dedup_tool_results(messages)
    messages = _drop_empty(messages, skipped, "empty after dedup")
    # Dropping a superseded result can bring two same-role turns together
    messages = merge_consecutive_same_role(messages)

    if repair_pairing:
        messages = strip_dangling_tool_calls(messages)
        messages = remove_orphaned_tool_results(messages)
        messages = _drop_empty(messages, skipped, "empty after pairing repair")
        # Repair can empty a message and bring two same-role turns together
        messages = merge_consecutive_same_role(messages)

    if skipped:
        logger.warning(
            "Normalization dropped %d message(s): %s",
            len(skipped),
            ", ".join(f"#{s.index} {s.role} ({s.reason})" for s in skipped),
        )
    return NormalizationReport(messages=messages, skipped=skipped)


def normalize(
    raw_history: list[Message],
    *,
    strip_markup: bool = True,
    repair_pairing: bool = False,
) -> list[Message]:
    """Normalize history into a deduplicated, role-alternating list."""
    return normalize_with_report(
        raw_history, strip_markup=strip_markup, repair_pairing=repair_pairing
    ).messages
