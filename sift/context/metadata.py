"""Reduction metadata -- the single piece of state carried between calls.

The checkpoint store persists an opaque JSON object per checkpoint. The
trim boundary lives in it under ``trimmed_up_to_message_index``; every
other key belongs to someone else and is passed through untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

METADATA_KEY = "trimmed_up_to_message_index"


@dataclass(frozen=True)
class ReductionMetadata:
    trimmed_up_to_index: int = 0

    @classmethod
    def from_raw(cls, raw: dict[str, Any] | None) -> ReductionMetadata:
        """Read the boundary. Missing or invalid values mean "never trimmed"."""
        if not raw:
            return cls()
        if not isinstance(raw, dict):
            logger.warning("Ignoring non-object metadata of type %s", type(raw).__name__)
            return cls()
        if METADATA_KEY not in raw:
            return cls()
        value = raw[METADATA_KEY]
        # bool is an int subclass; True must not read as index 1
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            logger.warning(
                "Ignoring invalid %s=%r in metadata, treating as 0", METADATA_KEY, value
            )
            return cls()
        return cls(trimmed_up_to_index=value)

    def merge_into(self, raw: dict[str, Any] | None) -> dict[str, Any]:
        """Copy of ``raw`` with the boundary set."""
        merged = dict(raw) if isinstance(raw, dict) else {}
        merged[METADATA_KEY] = self.trimmed_up_to_index
        return merged
