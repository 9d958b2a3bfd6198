"""Node model for the design document scripts operate on.

The node kinds form a closed set: every concrete class carries only the
properties that kind can have, and serializers dispatch on the class. Any
property may hold ``None`` (the host could not provide it) or :data:`MIXED`
(the value varies across a text range).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Iterator, Union

LOGGER = logging.getLogger(__name__)


class _Mixed:
    """Sentinel for properties that differ across a node's sub-ranges."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MIXED"

    # copies and pickles resolve back to the module singleton
    def __reduce__(self) -> str:
        return "MIXED"


MIXED = _Mixed()

SHAPE_TYPES: frozenset[str] = frozenset({"RECTANGLE", "ELLIPSE", "POLYGON", "STAR", "VECTOR", "LINE"})


class FontNotLoadedError(RuntimeError):
    """Raised when a text property is written before its font was loaded."""

    def __init__(self, family: str, style: str) -> None:
        super().__init__(
            f'Cannot write to node with unloaded font "{family} {style}". '
            f'Please call load_font(family="{family}", style="{style}") and await it first.'
        )
        self.family = family
        self.style = style


# -----------------------------------------------------------------------------
# Paints & effects
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class RGB:
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0

    @classmethod
    def from_hex(cls, value: str) -> "RGB":
        text = value.strip().lstrip("#")
        if len(text) == 3:
            text = "".join(ch * 2 for ch in text)
        if len(text) != 6:
            raise ValueError(f"Invalid hex color: {value!r}")
        return cls(*(int(text[i : i + 2], 16) / 255 for i in (0, 2, 4)))


@dataclass(slots=True)
class RGBA:
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 1.0


@dataclass(slots=True)
class SolidPaint:
    color: RGB = field(default_factory=RGB)
    opacity: float | None = 1.0
    visible: bool = True
    bound_variable_id: str | None = None

    type: ClassVar[str] = "SOLID"


@dataclass(slots=True)
class GradientStop:
    position: float
    color: RGBA = field(default_factory=RGBA)


@dataclass(slots=True)
class GradientPaint:
    gradient_type: str = "GRADIENT_LINEAR"
    stops: list[GradientStop] = field(default_factory=list)
    visible: bool = True

    @property
    def type(self) -> str:
        return self.gradient_type


@dataclass(slots=True)
class ImagePaint:
    image_hash: str | None = None
    scale_mode: str = "FILL"
    visible: bool = True

    type: ClassVar[str] = "IMAGE"


Paint = Union[SolidPaint, GradientPaint, ImagePaint]


@dataclass(slots=True)
class Effect:
    """Drop shadow, inner shadow or blur applied to a node."""

    type: str = "DROP_SHADOW"
    radius: float = 0.0
    color: RGBA | None = None
    offset: tuple[float, float] | None = None
    spread: float = 0.0
    visible: bool = True


@dataclass(slots=True)
class FontName:
    family: str
    style: str = "Regular"


# -----------------------------------------------------------------------------
# Scene nodes
# -----------------------------------------------------------------------------


class ChildrenMixin:
    """Tree helpers shared by every child-bearing kind."""

    __slots__ = ()

    children: list["SceneNode"]

    def append_child(self, node: "SceneNode") -> "SceneNode":
        return self.insert_child(len(self.children), node)

    def insert_child(self, index: int, node: "SceneNode") -> "SceneNode":
        if node.parent is not None:
            node.remove()
        self.children.insert(index, node)
        node.parent = self  # type: ignore[assignment]
        return node

    def walk(self) -> Iterator["SceneNode"]:
        """Yield every descendant depth-first, parents before children."""

        for child in self.children:
            yield child
            if isinstance(child, ChildrenMixin):
                yield from child.walk()

    def find_all(self, predicate: Callable[["SceneNode"], bool] | None = None) -> list["SceneNode"]:
        return [node for node in self.walk() if predicate is None or predicate(node)]

    def find_one(self, predicate: Callable[["SceneNode"], bool]) -> "SceneNode | None":
        for node in self.walk():
            if predicate(node):
                return node
        return None


@dataclass(slots=True, eq=False)
class SceneNode:
    id: str = ""
    name: str = ""
    x: float | None = 0.0
    y: float | None = 0.0
    width: float | None = 0.0
    height: float | None = 0.0
    visible: bool | None = True
    opacity: float | None = 1.0
    blend_mode: str | None = "PASS_THROUGH"
    effects: list[Effect] | None = field(default_factory=list)
    parent: Any = field(default=None, repr=False, compare=False)

    NODE_TYPE: ClassVar[str] = "NODE"

    @property
    def type(self) -> str:
        return self.NODE_TYPE

    def resize(self, width: float, height: float) -> None:
        if width < 0.01 or height < 0.01:
            raise ValueError("Node size must be at least 0.01 on each side")
        self.width = float(width)
        self.height = float(height)

    def remove(self) -> None:
        parent = self.parent
        if parent is None:
            return
        parent.children.remove(self)
        self.parent = None
        page = find_page(parent)
        if page is not None and self in page.selection:
            page.selection.remove(self)

    def ancestors(self) -> list[Any]:
        chain: list[Any] = []
        current = self.parent
        while current is not None and not isinstance(current, DocumentRoot):
            chain.append(current)
            current = current.parent
        return chain

    def path(self) -> str:
        """Return the ``Page > Frame > Node`` path used to disambiguate names."""

        names = [ancestor.name for ancestor in reversed(self.ancestors())]
        names.append(self.name)
        return " > ".join(names)


@dataclass(slots=True, eq=False)
class ShapeNode(SceneNode):
    shape: str = "RECTANGLE"
    fills: list[Paint] | Any = field(default_factory=list)
    strokes: list[Paint] | None = field(default_factory=list)
    stroke_weight: float | None = 1.0
    corner_radius: float | Any = 0.0
    blend_mode: str | None = "NORMAL"

    @property
    def type(self) -> str:
        return self.shape


@dataclass(slots=True, eq=False)
class TextNode(SceneNode):
    fills: list[Paint] | Any = field(default_factory=list)
    strokes: list[Paint] | None = field(default_factory=list)
    characters: str = ""
    font_size: float | Any = 14.0
    font_name: FontName | Any = field(default_factory=lambda: FontName("Inter", "Regular"))
    text_align_horizontal: str | None = "LEFT"
    text_align_vertical: str | None = "TOP"
    line_height: float | str | Any = "AUTO"
    letter_spacing: float | Any = 0.0
    blend_mode: str | None = "NORMAL"

    NODE_TYPE: ClassVar[str] = "TEXT"

    def set_characters(self, text: str) -> None:
        self._require_font()
        self.characters = str(text)

    def set_font_size(self, size: float) -> None:
        self._require_font()
        self.font_size = float(size)

    def set_font_name(self, font_name: FontName) -> None:
        registry = _font_registry(self)
        if registry is not None and not registry.is_loaded(font_name.family, font_name.style):
            raise FontNotLoadedError(font_name.family, font_name.style)
        self.font_name = font_name

    def _require_font(self) -> None:
        registry = _font_registry(self)
        if registry is None:
            return
        font = self.font_name
        if font is MIXED or not isinstance(font, FontName):
            raise RuntimeError("Cannot write to a text node with mixed fonts; set font_name first")
        if not registry.is_loaded(font.family, font.style):
            raise FontNotLoadedError(font.family, font.style)


@dataclass(slots=True, eq=False)
class GroupNode(ChildrenMixin, SceneNode):
    children: list[SceneNode] = field(default_factory=list)

    NODE_TYPE: ClassVar[str] = "GROUP"


@dataclass(slots=True, eq=False)
class SectionNode(ChildrenMixin, SceneNode):
    children: list[SceneNode] = field(default_factory=list)
    fills: list[Paint] | Any = field(default_factory=list)

    NODE_TYPE: ClassVar[str] = "SECTION"


@dataclass(slots=True, eq=False)
class FrameNode(ChildrenMixin, SceneNode):
    children: list[SceneNode] = field(default_factory=list)
    fills: list[Paint] | Any = field(default_factory=list)
    strokes: list[Paint] | None = field(default_factory=list)
    corner_radius: float | Any = 0.0
    clips_content: bool = True
    layout_mode: str | None = "NONE"
    padding_top: float = 0.0
    padding_right: float = 0.0
    padding_bottom: float = 0.0
    padding_left: float = 0.0
    item_spacing: float = 0.0
    primary_axis_align_items: str = "MIN"
    counter_axis_align_items: str = "MIN"
    layout_sizing_horizontal: str | None = None
    layout_sizing_vertical: str | None = None

    NODE_TYPE: ClassVar[str] = "FRAME"


@dataclass(slots=True, eq=False)
class ComponentNode(FrameNode):
    NODE_TYPE: ClassVar[str] = "COMPONENT"


@dataclass(slots=True, eq=False)
class InstanceNode(FrameNode):
    main_component_id: str | None = None
    variant_properties: dict[str, str] | None = None

    NODE_TYPE: ClassVar[str] = "INSTANCE"


CHILD_BEARING_KINDS: tuple[type, ...] = (FrameNode, GroupNode, SectionNode)


def has_children(node: Any) -> bool:
    """Return True when *node* belongs to a kind that can hold children."""

    return isinstance(node, ChildrenMixin)


# -----------------------------------------------------------------------------
# Pages, document, design tokens
# -----------------------------------------------------------------------------


@dataclass(slots=True, eq=False)
class PageNode(ChildrenMixin):
    id: str = ""
    name: str = ""
    children: list[SceneNode] = field(default_factory=list)
    selection: list[SceneNode] = field(default_factory=list)
    parent: Any = field(default=None, repr=False, compare=False)

    type: ClassVar[str] = "PAGE"


@dataclass(slots=True)
class TextStyle:
    id: str
    name: str
    font_name: FontName
    font_size: float


@dataclass(slots=True)
class Variable:
    id: str
    name: str
    collection: str = ""
    resolved_type: str = "COLOR"
    value: Any = None

    @property
    def qualified_name(self) -> str:
        return f"{self.collection}/{self.name}" if self.collection else self.name


class FontRegistry:
    """Tracks which fonts exist on the host and which have been loaded."""

    def __init__(self, available: set[tuple[str, str]] | None = None) -> None:
        self._available = set(available) if available is not None else None
        self._loaded: set[tuple[str, str]] = set()

    def is_available(self, family: str, style: str) -> bool:
        return self._available is None or (family, style) in self._available

    def is_loaded(self, family: str, style: str) -> bool:
        return (family, style) in self._loaded

    def mark_loaded(self, family: str, style: str) -> None:
        self._loaded.add((family, style))

    @property
    def loaded(self) -> frozenset[tuple[str, str]]:
        return frozenset(self._loaded)


@dataclass(slots=True)
class DocumentRoot:
    name: str = "Untitled"
    pages: list[PageNode] = field(default_factory=list)
    current_page_id: str | None = None
    text_styles: list[TextStyle] = field(default_factory=list)
    variables: list[Variable] = field(default_factory=list)
    images: dict[str, bytes] = field(default_factory=dict, repr=False)
    fonts: FontRegistry | None = field(default=None, repr=False, compare=False)

    type: ClassVar[str] = "DOCUMENT"

    def __post_init__(self) -> None:
        for page in self.pages:
            page.parent = self
            _link_parents(page)
        if self.current_page_id is None and self.pages:
            self.current_page_id = self.pages[0].id

    @property
    def current_page(self) -> PageNode:
        for page in self.pages:
            if page.id == self.current_page_id:
                return page
        if not self.pages:
            raise LookupError("Document has no pages")
        return self.pages[0]

    def add_page(self, page: PageNode) -> PageNode:
        page.parent = self
        _link_parents(page)
        self.pages.append(page)
        return page

    def get_node(self, node_id: str) -> SceneNode | PageNode | None:
        for page in self.pages:
            if page.id == node_id:
                return page
            found = page.find_one(lambda node: node.id == node_id)
            if found is not None:
                return found
        return None


def find_page(node: Any) -> PageNode | None:
    current = node
    while current is not None:
        if isinstance(current, PageNode):
            return current
        current = getattr(current, "parent", None)
    return None


def _font_registry(node: SceneNode) -> FontRegistry | None:
    current: Any = node.parent
    while current is not None:
        if isinstance(current, DocumentRoot):
            return current.fonts
        current = getattr(current, "parent", None)
    return None


def _link_parents(container: ChildrenMixin) -> None:
    for child in container.children:
        child.parent = container
        if isinstance(child, ChildrenMixin):
            _link_parents(child)


__all__ = [
    "MIXED",
    "SHAPE_TYPES",
    "CHILD_BEARING_KINDS",
    "FontNotLoadedError",
    "RGB",
    "RGBA",
    "SolidPaint",
    "GradientStop",
    "GradientPaint",
    "ImagePaint",
    "Paint",
    "Effect",
    "FontName",
    "ChildrenMixin",
    "SceneNode",
    "ShapeNode",
    "TextNode",
    "GroupNode",
    "SectionNode",
    "FrameNode",
    "ComponentNode",
    "InstanceNode",
    "PageNode",
    "TextStyle",
    "Variable",
    "FontRegistry",
    "DocumentRoot",
    "has_children",
    "find_page",
]
