"""Load and dump documents as plain JSON payloads."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from .nodes import (
    MIXED,
    RGB,
    RGBA,
    SHAPE_TYPES,
    ComponentNode,
    DocumentRoot,
    Effect,
    FontName,
    FrameNode,
    GradientPaint,
    GradientStop,
    GroupNode,
    ImagePaint,
    InstanceNode,
    PageNode,
    Paint,
    SceneNode,
    SectionNode,
    ShapeNode,
    SolidPaint,
    TextNode,
    TextStyle,
    Variable,
)

LOGGER = logging.getLogger(__name__)

_COMMON_FIELDS = ("id", "name", "x", "y", "width", "height", "visible", "opacity", "blend_mode")
_FRAME_FIELDS = (
    "corner_radius",
    "clips_content",
    "layout_mode",
    "padding_top",
    "padding_right",
    "padding_bottom",
    "padding_left",
    "item_spacing",
    "primary_axis_align_items",
    "counter_axis_align_items",
    "layout_sizing_horizontal",
    "layout_sizing_vertical",
)
_TEXT_FIELDS = (
    "characters",
    "font_size",
    "text_align_horizontal",
    "text_align_vertical",
    "line_height",
    "letter_spacing",
)
_FRAME_KINDS: dict[str, type[FrameNode]] = {
    "FRAME": FrameNode,
    "COMPONENT": ComponentNode,
    "INSTANCE": InstanceNode,
}


class DocumentFormatError(ValueError):
    """Raised when a document payload cannot be interpreted."""


def load_document(path: Path | str) -> DocumentRoot:
    target = Path(path).expanduser()
    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DocumentFormatError(f"{target} is not valid JSON: {exc}") from exc
    return document_from_dict(payload)


def save_document(document: DocumentRoot, path: Path | str) -> Path:
    target = Path(path).expanduser()
    body = json.dumps(document_to_dict(document), indent=2)
    tmp_path = target.with_suffix(".tmp")
    tmp_path.write_text(body, encoding="utf-8")
    tmp_path.replace(target)
    return target


def document_from_dict(payload: Mapping[str, Any]) -> DocumentRoot:
    if not isinstance(payload, Mapping):
        raise DocumentFormatError("Document payload must be an object")
    pages = [_page_from_dict(page) for page in payload.get("pages") or []]
    document = DocumentRoot(
        name=str(payload.get("name") or "Untitled"),
        pages=pages,
        current_page_id=payload.get("current_page_id"),
        text_styles=[
            TextStyle(
                id=str(style["id"]),
                name=str(style["name"]),
                font_name=FontName(**style["font_name"]),
                font_size=float(style["font_size"]),
            )
            for style in payload.get("text_styles") or []
        ],
        variables=[
            Variable(
                id=str(item["id"]),
                name=str(item["name"]),
                collection=str(item.get("collection") or ""),
                resolved_type=str(item.get("resolved_type") or "COLOR"),
                value=_variable_value(item.get("value")),
            )
            for item in payload.get("variables") or []
        ],
    )
    for page_payload, page in zip(payload.get("pages") or [], pages):
        selected = set(page_payload.get("selection") or [])
        if selected:
            page.selection = [node for node in page.walk() if node.id in selected]
    return document


def document_to_dict(document: DocumentRoot) -> dict[str, Any]:
    return {
        "name": document.name,
        "current_page_id": document.current_page_id,
        "pages": [
            {
                "id": page.id,
                "name": page.name,
                "selection": [node.id for node in page.selection],
                "children": [node_to_dict(child) for child in page.children],
            }
            for page in document.pages
        ],
        "text_styles": [
            {
                "id": style.id,
                "name": style.name,
                "font_name": {"family": style.font_name.family, "style": style.font_name.style},
                "font_size": style.font_size,
            }
            for style in document.text_styles
        ],
        "variables": [
            {
                "id": variable.id,
                "name": variable.name,
                "collection": variable.collection,
                "resolved_type": variable.resolved_type,
                "value": _jsonable(variable.value),
            }
            for variable in document.variables
        ],
    }


def node_from_dict(payload: Mapping[str, Any]) -> SceneNode:
    node_type = str(payload.get("type") or "").upper()
    common = {key: payload[key] for key in _COMMON_FIELDS if key in payload}
    common["effects"] = [_effect_from_dict(item) for item in payload.get("effects") or []]

    if node_type in _FRAME_KINDS:
        kwargs = dict(common)
        kwargs.update({key: payload[key] for key in _FRAME_FIELDS if key in payload})
        kwargs["fills"] = _paints(payload.get("fills"))
        kwargs["strokes"] = _paints(payload.get("strokes"))
        kwargs["children"] = [node_from_dict(child) for child in payload.get("children") or []]
        if node_type == "INSTANCE":
            kwargs["main_component_id"] = payload.get("main_component_id")
            kwargs["variant_properties"] = payload.get("variant_properties")
        return _FRAME_KINDS[node_type](**kwargs)
    if node_type == "GROUP":
        return GroupNode(**common, children=[node_from_dict(child) for child in payload.get("children") or []])
    if node_type == "SECTION":
        return SectionNode(
            **common,
            fills=_paints(payload.get("fills")),
            children=[node_from_dict(child) for child in payload.get("children") or []],
        )
    if node_type == "TEXT":
        kwargs = dict(common)
        kwargs.update({key: payload[key] for key in _TEXT_FIELDS if key in payload})
        font = payload.get("font_name")
        if isinstance(font, Mapping):
            kwargs["font_name"] = FontName(str(font.get("family")), str(font.get("style") or "Regular"))
        elif font == "MIXED":
            kwargs["font_name"] = MIXED
        kwargs["fills"] = _paints(payload.get("fills"))
        kwargs["strokes"] = _paints(payload.get("strokes"))
        return TextNode(**kwargs)
    if node_type in SHAPE_TYPES:
        return ShapeNode(
            **common,
            shape=node_type,
            fills=_paints(payload.get("fills")),
            strokes=_paints(payload.get("strokes")),
            stroke_weight=payload.get("stroke_weight", 1.0),
            corner_radius=payload.get("corner_radius", 0.0),
        )
    raise DocumentFormatError(f"Unsupported node type: {payload.get('type')!r}")


def node_to_dict(node: SceneNode) -> dict[str, Any]:
    data: dict[str, Any] = {"type": node.type}
    for key in _COMMON_FIELDS:
        data[key] = getattr(node, key)
    if node.effects:
        data["effects"] = [_jsonable(effect) for effect in node.effects]
    if isinstance(node, FrameNode):
        for key in _FRAME_FIELDS:
            data[key] = _jsonable(getattr(node, key))
        data["fills"] = _jsonable(node.fills)
        data["strokes"] = _jsonable(node.strokes)
        if isinstance(node, InstanceNode):
            data["main_component_id"] = node.main_component_id
            data["variant_properties"] = node.variant_properties
    elif isinstance(node, SectionNode):
        data["fills"] = _jsonable(node.fills)
    elif isinstance(node, TextNode):
        for key in _TEXT_FIELDS:
            data[key] = _jsonable(getattr(node, key))
        data["font_name"] = _jsonable(node.font_name)
        data["fills"] = _jsonable(node.fills)
        data["strokes"] = _jsonable(node.strokes)
    elif isinstance(node, ShapeNode):
        data["fills"] = _jsonable(node.fills)
        data["strokes"] = _jsonable(node.strokes)
        data["stroke_weight"] = node.stroke_weight
        data["corner_radius"] = _jsonable(node.corner_radius)
    if isinstance(node, (FrameNode, GroupNode, SectionNode)):
        data["children"] = [node_to_dict(child) for child in node.children]
    return data


def _page_from_dict(payload: Mapping[str, Any]) -> PageNode:
    return PageNode(
        id=str(payload.get("id") or ""),
        name=str(payload.get("name") or "Page"),
        children=[node_from_dict(child) for child in payload.get("children") or []],
    )


def _paints(payload: Any) -> list[Paint]:
    if payload == "MIXED":
        return MIXED  # type: ignore[return-value]
    paints: list[Paint] = []
    for item in payload or []:
        paint_type = str(item.get("type") or "SOLID").upper()
        visible = bool(item.get("visible", True))
        if paint_type == "SOLID":
            paints.append(
                SolidPaint(
                    color=_rgb(item.get("color")),
                    opacity=item.get("opacity", 1.0),
                    visible=visible,
                    bound_variable_id=item.get("bound_variable_id"),
                )
            )
        elif paint_type == "IMAGE":
            paints.append(
                ImagePaint(
                    image_hash=item.get("image_hash"),
                    scale_mode=str(item.get("scale_mode") or "FILL"),
                    visible=visible,
                )
            )
        elif paint_type.startswith("GRADIENT_"):
            stops = [
                GradientStop(position=float(stop.get("position", 0.0)), color=RGBA(**(stop.get("color") or {})))
                for stop in item.get("stops") or []
            ]
            paints.append(GradientPaint(gradient_type=paint_type, stops=stops, visible=visible))
        else:
            LOGGER.debug("Skipping unsupported paint type %s", paint_type)
    return paints


def _rgb(payload: Any) -> RGB:
    if isinstance(payload, str):
        return RGB.from_hex(payload)
    if isinstance(payload, Mapping):
        return RGB(float(payload.get("r", 0.0)), float(payload.get("g", 0.0)), float(payload.get("b", 0.0)))
    return RGB()


def _effect_from_dict(payload: Mapping[str, Any]) -> Effect:
    color = payload.get("color")
    offset = payload.get("offset")
    return Effect(
        type=str(payload.get("type") or "DROP_SHADOW"),
        radius=float(payload.get("radius", 0.0)),
        color=RGBA(**color) if isinstance(color, Mapping) else None,
        offset=(float(offset[0]), float(offset[1])) if offset else None,
        spread=float(payload.get("spread", 0.0)),
        visible=bool(payload.get("visible", True)),
    )


def _variable_value(value: Any) -> Any:
    if isinstance(value, Mapping) and {"r", "g", "b"} <= set(value):
        return RGB(float(value["r"]), float(value["g"]), float(value["b"]))
    return value


def _jsonable(value: Any) -> Any:
    if value is MIXED:
        return "MIXED"
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (SolidPaint, GradientPaint, ImagePaint)):
        data = {name: _jsonable(getattr(value, name)) for name in value.__slots__}
        data["type"] = value.type
        return data
    if hasattr(value, "__slots__") and hasattr(value, "__dataclass_fields__"):
        return {name: _jsonable(getattr(value, name)) for name in value.__dataclass_fields__}
    return value


__all__ = [
    "DocumentFormatError",
    "load_document",
    "save_document",
    "document_from_dict",
    "document_to_dict",
    "node_from_dict",
    "node_to_dict",
]
