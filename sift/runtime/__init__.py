"""Runtime layer -- hooks, model limits and checkpoints around inference.

Public API:
    ContextReductionHook - Before-inference hook that builds the request payload
    HookRegistry         - Ordered hook execution per lifecycle event
    ModelRegistry        - Context window / output limits per model
    InMemoryCheckpointStore - Process-local checkpoint persistence
"""

from sift.runtime.checkpoints import Checkpoint, CheckpointStore, InMemoryCheckpointStore
from sift.runtime.hooks import (
    Hook,
    HookAbortedError,
    HookAction,
    HookActionKind,
    HookRegistry,
    LifecycleEvent,
)
from sift.runtime.reduction_hook import (
    AgentState,
    ContextReductionError,
    ContextReductionHook,
    InferenceRequest,
)
from sift.runtime.registry import DEFAULT_MODELS, ModelInfo, ModelRegistry

__all__ = [
    "AgentState",
    "Checkpoint",
    "CheckpointStore",
    "ContextReductionError",
    "ContextReductionHook",
    "DEFAULT_MODELS",
    "Hook",
    "HookAbortedError",
    "HookAction",
    "HookActionKind",
    "HookRegistry",
    "InMemoryCheckpointStore",
    "InferenceRequest",
    "LifecycleEvent",
    "ModelInfo",
    "ModelRegistry",
]
