"""Protocol describing the design application that hosts a copilot session."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from .nodes import ComponentNode, DocumentRoot, InstanceNode, PageNode, SceneNode, TextStyle, Variable


@runtime_checkable
class DesignHost(Protocol):
    """Live document access plus the host primitives the core relies on.

    ``get_main_component_async``, ``get_local_text_styles_async``,
    ``get_local_variables_async``, ``export_png_async`` and ``resize_panel``
    are optional; callers look them up with ``getattr``.
    """

    document: DocumentRoot

    @property
    def current_page(self) -> PageNode:
        ...

    @property
    def selection(self) -> Sequence[SceneNode]:
        ...

    async def load_font_async(self, family: str, style: str) -> None:
        """Load a font so text nodes using it can be edited."""
        ...

    def commit_undo(self) -> None:
        """Close the current undo batch so one undo reverts everything since the last commit."""
        ...

    async def save_version_history_async(self, title: str) -> str:
        """Persist a labeled version of the document and return its identifier."""
        ...

    def notify(self, message: str) -> None:
        ...


class ComponentResolver(Protocol):
    async def get_main_component_async(self, node: InstanceNode) -> ComponentNode | None:
        ...


class DesignTokenSource(Protocol):
    async def get_local_text_styles_async(self) -> Sequence[TextStyle]:
        ...

    async def get_local_variables_async(self) -> Sequence[Variable]:
        ...


__all__ = ["DesignHost", "ComponentResolver", "DesignTokenSource"]
