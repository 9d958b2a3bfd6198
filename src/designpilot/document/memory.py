"""In-process host keeping the document in memory.

Used by the command line front-end and by the test-suite. Undo history is
kept as whole-page snapshots taken at every :meth:`InMemoryHost.commit_undo`.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from .nodes import (
    ComponentNode,
    DocumentRoot,
    FontName,
    FontRegistry,
    FrameNode,
    InstanceNode,
    PageNode,
    SceneNode,
    ShapeNode,
    TextNode,
    TextStyle,
    Variable,
    find_page,
)

LOGGER = logging.getLogger(__name__)

_DEFAULT_FONTS: frozenset[tuple[str, str]] = frozenset(
    (family, style)
    for family in ("Inter", "Roboto")
    for style in ("Regular", "Medium", "Semi Bold", "Bold")
)


@dataclass(slots=True)
class VersionEntry:
    version_id: str
    title: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryHost:
    """:class:`~designpilot.document.host.DesignHost` backed by plain objects."""

    def __init__(
        self,
        document: DocumentRoot,
        *,
        available_fonts: set[tuple[str, str]] | None = None,
        allow_version_history: bool = True,
    ) -> None:
        self.document = document
        if document.fonts is None:
            fonts = set(_DEFAULT_FONTS if available_fonts is None else available_fonts)
            document.fonts = FontRegistry(fonts)
        self.notifications: list[str] = []
        self.versions: list[VersionEntry] = []
        self.panel_size: tuple[int, int] | None = None
        self._allow_version_history = allow_version_history
        self._undo_stack: list[list[PageNode]] = []
        self._baseline = self._snapshot_pages()
        self._id_counter = 0

    # ------------------------------------------------------------------
    # Document access
    # ------------------------------------------------------------------

    @property
    def current_page(self) -> PageNode:
        return self.document.current_page

    @property
    def selection(self) -> Sequence[SceneNode]:
        return list(self.current_page.selection)

    def select(self, nodes: Sequence[SceneNode]) -> None:
        page = self.current_page
        page.selection = [node for node in nodes if find_page(node) is page]

    async def get_node_by_id_async(self, node_id: str) -> SceneNode | PageNode | None:
        return self.document.get_node(node_id)

    async def set_current_page_async(self, page: PageNode) -> None:
        if page not in self.document.pages:
            raise ValueError(f"Page {page.id!r} is not part of this document")
        self.document.current_page_id = page.id

    # ------------------------------------------------------------------
    # Node factories (exposed to scripts)
    # ------------------------------------------------------------------

    def create_frame(self, name: str = "Frame") -> FrameNode:
        return self._attach(FrameNode(id=self._next_id(), name=name, width=100.0, height=100.0))

    def create_rectangle(self, name: str = "Rectangle") -> ShapeNode:
        return self._attach(ShapeNode(id=self._next_id(), name=name, shape="RECTANGLE", width=100.0, height=100.0))

    def create_ellipse(self, name: str = "Ellipse") -> ShapeNode:
        return self._attach(ShapeNode(id=self._next_id(), name=name, shape="ELLIPSE", width=100.0, height=100.0))

    def create_text(self, name: str = "Text") -> TextNode:
        return self._attach(TextNode(id=self._next_id(), name=name, font_name=FontName("Inter", "Regular")))

    def create_page(self, name: str = "Page") -> PageNode:
        return self.document.add_page(PageNode(id=self._next_id(), name=name))

    # ------------------------------------------------------------------
    # Host primitives
    # ------------------------------------------------------------------

    async def load_font_async(self, family: str, style: str) -> None:
        fonts = self._fonts()
        if not fonts.is_available(family, style):
            raise LookupError(f'The font "{family} {style}" could not be loaded')
        fonts.mark_loaded(family, style)
        LOGGER.debug("Loaded font %s %s", family, style)

    def commit_undo(self) -> None:
        self._undo_stack.append(self._baseline)
        self._baseline = self._snapshot_pages()

    def discard_uncommitted(self) -> None:
        """Drop every change made since the last commit."""

        self._restore_pages(self._baseline)

    def undo(self) -> bool:
        """Revert everything since the previous commit; return False when history is empty."""

        if not self._undo_stack:
            return False
        previous = self._undo_stack.pop()
        self._restore_pages(previous)
        self._baseline = self._snapshot_pages()
        return True

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    async def save_version_history_async(self, title: str) -> str:
        if not self._allow_version_history:
            raise RuntimeError("Version history is not available for this file")
        entry = VersionEntry(version_id=f"v-{uuid.uuid4().hex[:8]}", title=title)
        self.versions.append(entry)
        return entry.version_id

    def notify(self, message: str) -> None:
        self.notifications.append(str(message))
        LOGGER.info("Host notification: %s", message)

    def resize_panel(self, width: int, height: int) -> None:
        self.panel_size = (int(width), int(height))

    async def export_png_async(self, node: SceneNode, scale: float = 1.0) -> bytes:
        for paint in getattr(node, "fills", None) or []:
            image_hash = getattr(paint, "image_hash", None)
            if image_hash and image_hash in self.document.images:
                return self.document.images[image_hash]
        raise LookupError(f"Node {node.id!r} has no exportable image data")

    async def get_main_component_async(self, node: InstanceNode) -> ComponentNode | None:
        if not node.main_component_id:
            return None
        found = self.document.get_node(node.main_component_id)
        return found if isinstance(found, ComponentNode) else None

    async def get_local_text_styles_async(self) -> Sequence[TextStyle]:
        return list(self.document.text_styles)

    async def get_local_variables_async(self) -> Sequence[Variable]:
        return list(self.document.variables)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fonts(self) -> FontRegistry:
        fonts = self.document.fonts
        if fonts is None:
            fonts = self.document.fonts = FontRegistry()
        return fonts

    def _attach(self, node: Any) -> Any:
        self.current_page.append_child(node)
        return node

    def _next_id(self) -> str:
        self._id_counter += 1
        return f"new:{self._id_counter}"

    def _snapshot_pages(self) -> list[PageNode]:
        memo: dict[int, Any] = {id(self.document): self.document}
        return copy.deepcopy(self.document.pages, memo)

    def _restore_pages(self, pages: list[PageNode]) -> None:
        current_id = self.document.current_page_id
        memo: dict[int, Any] = {id(self.document): self.document}
        restored = copy.deepcopy(pages, memo)
        self.document.pages = restored
        if all(page.id != current_id for page in restored):
            self.document.current_page_id = restored[0].id if restored else None


__all__ = ["InMemoryHost", "VersionEntry"]
