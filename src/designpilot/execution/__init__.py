"""Script execution, font recovery and safety checkpoints."""

from .checkpoints import CheckpointRecord, SafetyCheckpoint, execute_with_safety
from .executor import ExecutionResult, PendingScript, ScriptExecutor

__all__ = [
    "CheckpointRecord",
    "SafetyCheckpoint",
    "execute_with_safety",
    "ExecutionResult",
    "PendingScript",
    "ScriptExecutor",
]
