"""Budget-aware trimming with a monotonic, persisted boundary.

Layer between the normalized history and the provider. When the
estimated request exceeds ``window * budget_fraction``, content of old
assistant/tool messages is replaced by a fixed placeholder. The index up
to which this has happened is persisted in checkpoint metadata, so the
next call re-applies exactly the same replacements and the provider sees
a byte-identical prefix (prompt cache hit) until the boundary moves.

Rules:
- user and system messages are never trimmed
- the boundary never moves backwards
- the boundary moves in one jump to just before the last keep_n
  assistant messages, then message by message only if still over budget
- if nothing trimmable is left the request goes out over budget and the
  provider enforces its own limit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, assert_never

from sift.context.metadata import ReductionMetadata
from sift.context.normalizer import SkippedMessage, normalize_with_report
from sift.context.providers import Provider, apply_provider_layout
from sift.context.tokens import (
    apply_safety_margin,
    estimate_message_tokens,
    estimate_tool_overhead,
)
from sift.models import (
    TRIMMABLE_ROLES,
    ContentPart,
    ImagePart,
    Message,
    Role,
    TextPart,
    ToolCallPart,
    ToolDefinition,
    ToolResultPart,
)

logger = logging.getLogger(__name__)

TRIMMED_PLACEHOLDER = "[trimmed]"
DEFAULT_BUDGET_FRACTION = 0.8
DEFAULT_KEEP_LAST_N = 50


@dataclass
class ReductionResult:
    """Output of one reduction: the payload messages plus new metadata."""

    messages: list[Message]
    metadata: dict[str, Any] | None
    trimmed_up_to_index: int
    estimated_tokens: int  # includes tool overhead
    threshold: float
    fast_path: bool = False
    over_budget: bool = False
    newly_trimmed: int = 0
    skipped: list[SkippedMessage] = field(default_factory=list)


def trim_message(message: Message) -> Message:
    """Replace human-readable payload with the placeholder.

    ToolCall and Image parts survive so the call/result pairing stays
    valid even though the prose around it is gone.
    """
    if isinstance(message.content, str):
        return Message(message.role, TRIMMED_PLACEHOLDER)

    parts: list[ContentPart] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append(TextPart(TRIMMED_PLACEHOLDER))
        elif isinstance(part, ToolResultPart):
            parts.append(replace(part, content=TRIMMED_PLACEHOLDER))
        elif isinstance(part, (ToolCallPart, ImagePart)):
            parts.append(part)
        else:
            assert_never(part)
    return Message(message.role, parts)


def find_keep_boundary(messages: list[Message], keep_last_n: int) -> int:
    """Index of the earliest message protecting the last N assistant turns."""
    if keep_last_n <= 0:
        return len(messages)
    seen = 0
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == Role.ASSISTANT:
            seen += 1
            if seen == keep_last_n:
                return idx
    return 0


def reduce_context(
    history: list[Message],
    window: int,
    metadata: dict[str, Any] | None = None,
    tools: list[ToolDefinition] | None = None,
    *,
    budget_fraction: float = DEFAULT_BUDGET_FRACTION,
    keep_last_n: int = DEFAULT_KEEP_LAST_N,
    provider: Provider | str = Provider.ANTHROPIC,
    strip_markup: bool = True,
    repair_pairing: bool = False,
) -> ReductionResult:
    """Normalize, provider-format and budget-trim a conversation.

    ``metadata`` is the opaque object persisted with the last checkpoint
    (may be None). The returned metadata must be persisted with the next
    checkpoint. On the fast path (never trimmed, under budget) it is the
    input object, unchanged.

    Raises ValueError for a non-positive window, a budget fraction outside
    (0, 1] or a negative keep_last_n.
    """
    if window <= 0:
        raise ValueError(f"window must be > 0, got {window}")
    if not 0.0 < budget_fraction <= 1.0:
        raise ValueError(f"budget_fraction must be in (0, 1], got {budget_fraction}")
    if keep_last_n < 0:
        raise ValueError(f"keep_last_n must be >= 0, got {keep_last_n}")

    # 1. Canonical message list
    report = normalize_with_report(
        history, strip_markup=strip_markup, repair_pairing=repair_pairing
    )
    skipped = list(report.skipped)
    messages = apply_provider_layout(report.messages, Provider.parse(provider), skipped)

    threshold = window * budget_fraction
    tool_overhead = estimate_tool_overhead(tools)
    costs = [estimate_message_tokens(m) for m in messages]
    raw_total = sum(costs)

    def current_tokens() -> int:
        return apply_safety_margin(raw_total) + tool_overhead

    # 2. Prior boundary
    prev = ReductionMetadata.from_raw(metadata).trimmed_up_to_index

    # 3. Fast path: never trimmed and still fits
    if prev == 0 and current_tokens() <= threshold:
        logger.debug(
            "Context under budget (%d <= %.0f tokens), no trimming",
            current_tokens(),
            threshold,
        )
        return ReductionResult(
            messages=messages,
            metadata=metadata,
            trimmed_up_to_index=0,
            estimated_tokens=current_tokens(),
            threshold=threshold,
            fast_path=True,
            skipped=skipped,
        )

    def trim_at(idx: int) -> bool:
        nonlocal raw_total
        message = messages[idx]
        if message.role not in TRIMMABLE_ROLES:
            return False
        trimmed = trim_message(message)
        if trimmed == message:
            return False
        new_cost = estimate_message_tokens(trimmed)
        raw_total += new_cost - costs[idx]
        costs[idx] = new_cost
        messages[idx] = trimmed
        return True

    # 4. Protected tail
    keep_boundary = find_keep_boundary(messages, keep_last_n)

    # 5-6. Re-apply the committed prefix, then re-measure
    if prev > len(messages):
        logger.warning(
            "Stored trim boundary %d exceeds history length %d", prev, len(messages)
        )
    for idx in range(min(prev, len(messages))):
        trim_at(idx)

    # 7-8. Advance only when over budget
    new_boundary = prev
    newly_trimmed = 0
    over_budget = False
    if current_tokens() > threshold:
        for idx in range(prev, keep_boundary):
            newly_trimmed += trim_at(idx)
        idx = max(prev, keep_boundary)
        while current_tokens() > threshold and idx < len(messages):
            newly_trimmed += trim_at(idx)
            idx += 1
        new_boundary = max(idx, prev)
        if current_tokens() > threshold:
            over_budget = True
            logger.warning(
                "Context still over budget after trimming everything trimmable "
                "(%d > %.0f tokens, %d messages)",
                current_tokens(),
                threshold,
                len(messages),
            )
        logger.info(
            "Trimmed context: boundary %d -> %d (keep_boundary=%d, "
            "newly trimmed=%d, tokens=%d, threshold=%.0f)",
            prev,
            new_boundary,
            keep_boundary,
            newly_trimmed,
            current_tokens(),
            threshold,
        )
    else:
        logger.debug(
            "Context under budget after re-applying boundary %d, frozen", prev
        )

    # 9. New metadata
    new_metadata = ReductionMetadata(trimmed_up_to_index=new_boundary)
    return ReductionResult(
        messages=messages,
        metadata=new_metadata.merge_into(metadata),
        trimmed_up_to_index=new_boundary,
        estimated_tokens=current_tokens(),
        threshold=threshold,
        over_budget=over_budget,
        newly_trimmed=newly_trimmed,
        skipped=skipped,
    )
