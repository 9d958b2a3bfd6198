"""Scene serialization and context budgeting."""

from .context import ContextBudgetController, SceneContext, find_empty_spot
from .defaults import FIELD_DEFAULTS, is_default
from .serializer import NodeSerializer, SerializedNode

__all__ = [
    "ContextBudgetController",
    "SceneContext",
    "find_empty_spot",
    "FIELD_DEFAULTS",
    "is_default",
    "NodeSerializer",
    "SerializedNode",
]
