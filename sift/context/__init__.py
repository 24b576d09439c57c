"""Context reduction pipeline: normalize -> provider layout -> trim.

Public API: reduce_context() plus the individual stages for callers
that need only one of them.
"""

from sift.context.metadata import METADATA_KEY, ReductionMetadata
from sift.context.normalizer import (
    NormalizationReport,
    SkippedMessage,
    dedup_tool_results,
    merge_consecutive_same_role,
    normalize,
    normalize_with_report,
    remove_orphaned_tool_results,
    strip_checkpoint_markup,
    strip_dangling_tool_calls,
)
from sift.context.providers import (
    Provider,
    ToolResultLayout,
    apply_provider_layout,
    check_adjacency,
    layout_for,
    merge_tool_results,
)
from sift.context.tokens import (
    apply_safety_margin,
    estimate_message_tokens,
    estimate_text_tokens,
    estimate_tokens,
    estimate_tool_overhead,
)
from sift.context.trimmer import (
    TRIMMED_PLACEHOLDER,
    ReductionResult,
    find_keep_boundary,
    reduce_context,
    trim_message,
)

__all__ = [
    # Pipeline
    "reduce_context",
    "ReductionResult",
    # Metadata
    "METADATA_KEY",
    "ReductionMetadata",
    # Normalizer
    "NormalizationReport",
    "SkippedMessage",
    "dedup_tool_results",
    "merge_consecutive_same_role",
    "normalize",
    "normalize_with_report",
    "remove_orphaned_tool_results",
    "strip_checkpoint_markup",
    "strip_dangling_tool_calls",
    # Providers
    "Provider",
    "ToolResultLayout",
    "apply_provider_layout",
    "check_adjacency",
    "layout_for",
    "merge_tool_results",
    # Tokens
    "apply_safety_margin",
    "estimate_message_tokens",
    "estimate_text_tokens",
    "estimate_tokens",
    "estimate_tool_overhead",
    # Trimmer
    "TRIMMED_PLACEHOLDER",
    "find_keep_boundary",
    "trim_message",
]
