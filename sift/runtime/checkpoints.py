"""Checkpoint store contract.

The store owns persistence of a conversation's history and its opaque
metadata object. The metadata must round-trip exactly: a store that
drops or defaults it on load silently resets the trim boundary and
breaks prompt caching on every resume.

InMemoryCheckpointStore serializes through JSON so it behaves like a
real store (no shared object references between save and load).
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from sift.models import Message

logger = logging.getLogger(__name__)


@dataclass
class Checkpoint:
    """Conversation state at one point in time."""

    session_id: str
    messages: list[Message] = field(default_factory=list)
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    parent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "parent_id": self.parent_id,
            "messages": [m.to_dict() for m in self.messages],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            parent_id=data.get("parent_id"),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            metadata=data.get("metadata"),
        )


class CheckpointStore(Protocol):
    def load(self, session_id: str) -> Checkpoint | None:
        """Latest checkpoint of a session, or None for a new session."""
        ...

    def save(self, checkpoint: Checkpoint) -> None: ...


class InMemoryCheckpointStore:
    """Process-local store, one checkpoint chain per session."""

    def __init__(self) -> None:
        self._chains: dict[str, list[str]] = {}

    def load(self, session_id: str) -> Checkpoint | None:
        chain = self._chains.get(session_id)
        if not chain:
            return None
        return Checkpoint.from_dict(json.loads(chain[-1]))

    def save(self, checkpoint: Checkpoint) -> None:
        self._chains.setdefault(checkpoint.session_id, []).append(
            json.dumps(checkpoint.to_dict())
        )
        logger.debug(
            "Saved checkpoint %s for session %s (%d messages)",
            checkpoint.id,
            checkpoint.session_id,
            len(checkpoint.messages),
        )

    def history(self, session_id: str) -> list[Checkpoint]:
        """Every checkpoint of a session, oldest first."""
        return [
            Checkpoint.from_dict(json.loads(raw))
            for raw in self._chains.get(session_id, [])
        ]
