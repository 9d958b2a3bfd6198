"""Per-field default table consulted by the serializer.

A serialized field is dropped when its value is listed here for that key,
when it is ``None`` or :data:`~designpilot.document.nodes.MIXED`, or when it is
an empty list.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..document.nodes import MIXED

FIELD_DEFAULTS: Mapping[str, frozenset[Any]] = {
    "opacity": frozenset({1, 1.0}),
    "visible": frozenset({True}),
    "cornerRadius": frozenset({0, 0.0}),
    "blendMode": frozenset({"NORMAL", "PASS_THROUGH"}),
    "textAlignHorizontal": frozenset({"LEFT"}),
    "textAlignVertical": frozenset({"TOP"}),
    "layoutMode": frozenset({"NONE"}),
    "lineHeight": frozenset({"AUTO"}),
    "letterSpacing": frozenset({0, 0.0}),
}


def is_default(key: str, value: Any) -> bool:
    if value is None or value is MIXED:
        return True
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    defaults = FIELD_DEFAULTS.get(key)
    if defaults is None:
        return False
    # bool is an int subclass; keep ``visible=False`` distinct from ``opacity=0``
    if isinstance(value, bool) and key != "visible":
        return False
    try:
        return value in defaults
    except TypeError:
        return False


__all__ = ["FIELD_DEFAULTS", "is_default"]
