"""Token estimation -- offline, deterministic, pessimistic.

Called many times per reduction, so everything here is a linear pass
over byte lengths. No tokenizer, no network. The estimate must err on
the high side: trimming a little early is fine, overshooting the
provider limit is a hard API rejection.

All arithmetic is integer so the same input always yields the same count.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any, assert_never

from sift.models import (
    ImagePart,
    Message,
    TextPart,
    ToolCallPart,
    ToolDefinition,
    ToolResultPart,
)

# 3.5 bytes per token, expressed as 2/7 tokens per byte
BYTES_PER_TOKEN_NUM = 7
BYTES_PER_TOKEN_DEN = 2

MESSAGE_OVERHEAD = 8  # role / wrapper framing
PART_OVERHEAD = 3
TOOL_BLOCK_OVERHEAD_BYTES = 30  # id, type and key names around a call/result
IMAGE_TOKENS = 2000
SAFETY_MARGIN_PERCENT = 105

TOOL_SCHEMA_INFLATION_NUM = 6  # x1.2 for schema wrapping
TOOL_SCHEMA_INFLATION_DEN = 5
TOOL_OVERHEAD = 8


def bytes_to_tokens(n_bytes: int) -> int:
    """Round-up conversion of a byte count to tokens."""
    if n_bytes <= 0:
        return 0
    return -(-n_bytes * BYTES_PER_TOKEN_DEN // BYTES_PER_TOKEN_NUM)


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _serialize(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def estimate_text_tokens(text: str) -> int:
    """Tokens for a bare string, without message framing."""
    return bytes_to_tokens(_byte_len(text))


def estimate_message_tokens(message: Message) -> int:
    """Raw cost of one message, before the safety margin."""
    content = message.content
    if isinstance(content, str):
        # costed like the single TextPart it becomes after a merge
        if not content:
            return MESSAGE_OVERHEAD
        return MESSAGE_OVERHEAD + PART_OVERHEAD + estimate_text_tokens(content)

    total = MESSAGE_OVERHEAD
    for part in content:
        total += PART_OVERHEAD
        if isinstance(part, TextPart):
            total += estimate_text_tokens(part.text)
        elif isinstance(part, ToolCallPart):
            total += bytes_to_tokens(
                _byte_len(part.name)
                + _byte_len(_serialize(part.arguments))
                + TOOL_BLOCK_OVERHEAD_BYTES
            )
        elif isinstance(part, ToolResultPart):
            total += bytes_to_tokens(
                _byte_len(part.content) + TOOL_BLOCK_OVERHEAD_BYTES
            )
        elif isinstance(part, ImagePart):
            total += IMAGE_TOKENS
        else:
            assert_never(part)
    return total


def apply_safety_margin(raw_tokens: int) -> int:
    """Inflate a raw sum by 5%, rounding up."""
    return -(-raw_tokens * SAFETY_MARGIN_PERCENT // 100)


def estimate_tokens(messages: Iterable[Message]) -> int:
    """Conservative token count for a message list."""
    return apply_safety_margin(sum(estimate_message_tokens(m) for m in messages))


def estimate_tool_overhead(tools: Iterable[ToolDefinition] | None) -> int:
    """Tokens consumed by tool definitions injected into the request."""
    if not tools:
        return 0
    total = 0
    for tool in tools:
        n_bytes = (
            _byte_len(tool.name)
            + _byte_len(tool.description)
            + _byte_len(_serialize(tool.input_schema))
        )
        inflated = -(-n_bytes * TOOL_SCHEMA_INFLATION_NUM // TOOL_SCHEMA_INFLATION_DEN)
        total += bytes_to_tokens(inflated) + TOOL_OVERHEAD
    return total
