"""Structural serializer turning document nodes into compact JSON records."""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, TypedDict

from ..document.nodes import (
    MIXED,
    RGB,
    RGBA,
    ChildrenMixin,
    Effect,
    FontName,
    FrameNode,
    GradientPaint,
    ImagePaint,
    InstanceNode,
    SceneNode,
    SolidPaint,
    TextNode,
    has_children,
)
from .defaults import is_default

LOGGER = logging.getLogger(__name__)

_LAYOUT_DETAIL_FIELDS: tuple[tuple[str, str], ...] = (
    ("paddingTop", "padding_top"),
    ("paddingRight", "padding_right"),
    ("paddingBottom", "padding_bottom"),
    ("paddingLeft", "padding_left"),
    ("itemSpacing", "item_spacing"),
    ("primaryAxisAlignItems", "primary_axis_align_items"),
    ("counterAxisAlignItems", "counter_axis_align_items"),
)


class SerializedNode(TypedDict, total=False):
    id: str
    name: str
    type: str
    x: int
    y: int
    width: int
    height: int
    fills: list[dict[str, Any]]
    strokes: list[dict[str, Any]]
    opacity: float
    visible: bool
    cornerRadius: float
    effects: list[dict[str, Any]]
    blendMode: str
    characters: str
    fontSize: float
    fontFamily: str
    fontStyle: str
    textAlignHorizontal: str
    textAlignVertical: str
    lineHeight: float | str
    letterSpacing: float
    layoutMode: str
    paddingTop: float
    paddingRight: float
    paddingBottom: float
    paddingLeft: float
    itemSpacing: float
    primaryAxisAlignItems: str
    counterAxisAlignItems: str
    layoutSizingHorizontal: str
    layoutSizingVertical: str
    componentId: str
    variantProperties: dict[str, str]
    children: list["SerializedNode"]
    childCount: int


def round_half_up(value: float, places: int = 0) -> float:
    """Round half away from zero for positives (``Math.round`` semantics), not banker's rounding."""

    factor = 10**places
    return math.floor(value * factor + 0.5) / factor


def round_geometry(value: float) -> int:
    return int(math.floor(value + 0.5))


class NodeSerializer:
    """Serialize nodes, omitting every field that still holds its default.

    ``variable_names`` maps variable ids to ``collection/name`` strings; when a
    solid paint is bound to one of them the record gains a ``variable`` key.
    ``host`` is only consulted to resolve the main component of instances.
    """

    def __init__(self, host: Any = None, *, variable_names: Mapping[str, str] | None = None) -> None:
        self._host = host
        self._variable_names = dict(variable_names or {})

    async def serialize(self, node: SceneNode, depth: int = 0, max_depth: int = 6) -> SerializedNode:
        record: SerializedNode = {
            "id": node.id,
            "name": node.name,
            "type": node.type,
        }
        for key in ("x", "y", "width", "height"):
            value = _read(node, key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                record[key] = round_geometry(value)  # type: ignore[literal-required]

        fills = _read(node, "fills")
        if isinstance(fills, list):
            self._put(record, "fills", [self._paint(paint) for paint in fills])
        strokes = _read(node, "strokes")
        if isinstance(strokes, list):
            self._put(record, "strokes", [self._paint(paint) for paint in strokes])

        opacity = _read(node, "opacity")
        if isinstance(opacity, (int, float)) and not is_default("opacity", opacity):
            record["opacity"] = round_half_up(opacity, 2)
        self._put(record, "visible", _read(node, "visible"))
        corner_radius = _read(node, "corner_radius")
        if isinstance(corner_radius, (int, float)):
            self._put(record, "cornerRadius", corner_radius)
        effects = _read(node, "effects")
        if isinstance(effects, list):
            self._put(record, "effects", [_effect(effect) for effect in effects])
        self._put(record, "blendMode", _read(node, "blend_mode"))

        if isinstance(node, TextNode):
            self._text_fields(node, record)
        elif isinstance(node, FrameNode):
            self._layout_fields(node, record)
            if isinstance(node, InstanceNode):
                await self._instance_fields(node, record)

        if isinstance(node, ChildrenMixin):
            children = _read(node, "children") or []
            if depth < max_depth:
                record["children"] = [await self._child(child, depth + 1, max_depth) for child in children]
            else:
                record["childCount"] = len(children)
        return record

    async def serialize_many(self, nodes: list[SceneNode], max_depth: int) -> list[SerializedNode]:
        return [await self._child(node, 0, max_depth) for node in nodes]

    async def _child(self, node: SceneNode, depth: int, max_depth: int) -> SerializedNode:
        try:
            return await self.serialize(node, depth, max_depth)
        except Exception:
            LOGGER.debug("Serializing node %s failed; emitting identity only", getattr(node, "id", "?"), exc_info=True)
            record: SerializedNode = {
                "id": getattr(node, "id", ""),
                "name": getattr(node, "name", ""),
                "type": getattr(node, "type", ""),
            }
            if has_children(node):
                record["childCount"] = len(getattr(node, "children", None) or [])
            return record

    @staticmethod
    def _put(record: SerializedNode, key: str, value: Any) -> None:
        if not is_default(key, value):
            record[key] = value  # type: ignore[literal-required]

    def _paint(self, paint: Any) -> dict[str, Any]:
        if isinstance(paint, SolidPaint):
            data: dict[str, Any] = {"type": "SOLID", "color": _color(paint.color)}
            if isinstance(paint.opacity, (int, float)) and paint.opacity != 1:
                data["opacity"] = paint.opacity
            if paint.bound_variable_id and paint.bound_variable_id in self._variable_names:
                data["variable"] = self._variable_names[paint.bound_variable_id]
        elif isinstance(paint, (GradientPaint, ImagePaint)):
            data = {"type": paint.type}
        else:
            data = {"type": str(getattr(paint, "type", "UNKNOWN"))}
        if getattr(paint, "visible", True) is False:
            data["visible"] = False
        return data

    def _text_fields(self, node: TextNode, record: SerializedNode) -> None:
        characters = _read(node, "characters")
        if isinstance(characters, str):
            record["characters"] = characters
        font_size = _read(node, "font_size")
        if isinstance(font_size, (int, float)):
            record["fontSize"] = font_size
        font_name = _read(node, "font_name")
        if isinstance(font_name, FontName):
            record["fontFamily"] = font_name.family
            record["fontStyle"] = font_name.style
        self._put(record, "textAlignHorizontal", _read(node, "text_align_horizontal"))
        self._put(record, "textAlignVertical", _read(node, "text_align_vertical"))
        self._put(record, "lineHeight", _read(node, "line_height"))
        self._put(record, "letterSpacing", _read(node, "letter_spacing"))

    def _layout_fields(self, node: FrameNode, record: SerializedNode) -> None:
        layout_mode = _read(node, "layout_mode")
        if is_default("layoutMode", layout_mode):
            return
        record["layoutMode"] = layout_mode
        for key, attr in _LAYOUT_DETAIL_FIELDS:
            value = _read(node, attr)
            if value is not None and value is not MIXED:
                record[key] = value  # type: ignore[literal-required]
        for key, attr in (
            ("layoutSizingHorizontal", "layout_sizing_horizontal"),
            ("layoutSizingVertical", "layout_sizing_vertical"),
        ):
            value = _read(node, attr)
            if value:
                record[key] = value  # type: ignore[literal-required]

    async def _instance_fields(self, node: InstanceNode, record: SerializedNode) -> None:
        component_id = node.main_component_id
        resolver = getattr(self._host, "get_main_component_async", None)
        if not component_id and callable(resolver):
            try:
                component = await resolver(node)
            except Exception:
                LOGGER.debug("Main component lookup failed for %s", node.id, exc_info=True)
                component = None
            component_id = getattr(component, "id", None)
        if component_id:
            record["componentId"] = component_id
        variants = _read(node, "variant_properties")
        if variants:
            record["variantProperties"] = dict(variants)


def _read(node: Any, attr: str) -> Any:
    try:
        value = getattr(node, attr, None)
    except Exception:
        LOGGER.debug("Reading %s from %s failed", attr, getattr(node, "id", "?"), exc_info=True)
        return None
    return None if value is MIXED else value


def _color(color: RGB | RGBA | None) -> dict[str, float]:
    if color is None:
        return {"r": 0.0, "g": 0.0, "b": 0.0}
    data = {
        "r": round_half_up(color.r, 3),
        "g": round_half_up(color.g, 3),
        "b": round_half_up(color.b, 3),
    }
    if isinstance(color, RGBA) and color.a != 1:
        data["a"] = round_half_up(color.a, 3)
    return data


def _effect(effect: Effect) -> dict[str, Any]:
    data: dict[str, Any] = {"type": effect.type, "radius": effect.radius}
    if effect.color is not None:
        data["color"] = _color(effect.color)
    if effect.offset is not None:
        data["offset"] = {"x": effect.offset[0], "y": effect.offset[1]}
    if effect.spread:
        data["spread"] = effect.spread
    if effect.visible is False:
        data["visible"] = False
    return data


__all__ = ["SerializedNode", "NodeSerializer", "round_half_up", "round_geometry"]
