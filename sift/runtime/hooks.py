"""Lifecycle hooks around a request.

Hooks are registered once and run for every lifecycle event of every
request, in ascending priority. Unlike fire-and-forget event handlers,
a hook's exception is NOT isolated: a failing before-inference hook must
fail the inference instead of letting a malformed payload through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class LifecycleEvent(StrEnum):
    # Request lifecycle
    BEFORE_REQUEST = "before_request"
    AFTER_REQUEST = "after_request"
    # LLM interaction
    BEFORE_INFERENCE = "before_inference"
    AFTER_INFERENCE = "after_inference"
    # Tool lifecycle
    TOOL_CALL_REQUESTED = "tool_call_requested"
    BEFORE_TOOL_EXECUTION = "before_tool_execution"
    AFTER_TOOL_EXECUTION = "after_tool_execution"
    TOOL_CALL_ABORTED = "tool_call_aborted"
    # Errors
    ERROR = "error"


class HookActionKind(StrEnum):
    CONTINUE = "continue"
    SKIP = "skip"  # skip remaining hooks for this event
    ABORT = "abort"


@dataclass(frozen=True)
class HookAction:
    kind: HookActionKind = HookActionKind.CONTINUE
    reason: str | None = None

    @classmethod
    def proceed(cls) -> HookAction:
        return cls()

    @classmethod
    def skip(cls) -> HookAction:
        return cls(HookActionKind.SKIP)

    @classmethod
    def abort(cls, reason: str) -> HookAction:
        return cls(HookActionKind.ABORT, reason)


class HookAbortedError(RuntimeError):
    """A hook asked to abort the current operation."""

    def __init__(self, hook_name: str, event: LifecycleEvent, reason: str) -> None:
        super().__init__(f"Hook '{hook_name}' aborted {event}: {reason}")
        self.hook_name = hook_name
        self.event = event
        self.reason = reason


@runtime_checkable
class Hook(Protocol):
    name: str
    priority: int  # lower runs earlier

    def execute(self, state: Any, event: LifecycleEvent) -> HookAction: ...


class HookRegistry:
    """Ordered collection of hooks, executed per lifecycle event."""

    def __init__(self) -> None:
        self._hooks: list[Hook] = []

    def register(self, hook: Hook) -> None:
        """Register a hook. Equal priorities keep registration order."""
        self._hooks.append(hook)
        self._hooks.sort(key=lambda h: h.priority)
        logger.debug("Registered hook '%s' (priority %d)", hook.name, hook.priority)

    @property
    def hooks(self) -> list[Hook]:
        return list(self._hooks)

    def execute(self, state: Any, event: LifecycleEvent) -> None:
        """Run every hook for ``event``.

        Stops early on SKIP, raises HookAbortedError on ABORT. Exceptions
        raised by a hook propagate to the caller.
        """
        for hook in self._hooks:
            action = hook.execute(state, event)
            if action.kind is HookActionKind.SKIP:
                logger.debug("Hook '%s' skipped remaining hooks for %s", hook.name, event)
                return
            if action.kind is HookActionKind.ABORT:
                reason = action.reason or "no reason given"
                logger.warning("Hook '%s' aborted %s: %s", hook.name, event, reason)
                raise HookAbortedError(hook.name, event, reason)
