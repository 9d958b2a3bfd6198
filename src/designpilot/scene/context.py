"""Bounded scene context sent to the model alongside every request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Sequence

from ..ai.utils.tokens import estimate_budget_units
from ..document.nodes import RGB, RGBA, PageNode, SceneNode
from .serializer import NodeSerializer, SerializedNode, round_geometry, round_half_up

LOGGER = logging.getLogger(__name__)

Scope = Literal["selection", "page"]

DEFAULT_TOKEN_CEILING = 6000
EMPTY_SPOT_GAP = 100


@dataclass(slots=True)
class SceneContext:
    """Snapshot of the document region the operator is working on.

    ``max_depth`` and ``estimated_tokens`` are diagnostics only and are not part
    of :meth:`as_payload`.
    """

    file: dict[str, Any]
    scope: Scope
    scope_description: str
    nodes: list[SerializedNode]
    empty_spot: dict[str, int]
    text_styles: list[dict[str, Any]] | None = None
    variables: list[dict[str, Any]] | None = None
    max_depth: int = 0
    estimated_tokens: float = 0.0
    reduced: bool = False

    @property
    def focus_ids(self) -> list[str]:
        """Ids of the selected roots; empty for page scope."""

        if self.scope != "selection":
            return []
        return [node["id"] for node in self.nodes]

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "file": self.file,
            "scope": self.scope,
            "scopeDescription": self.scope_description,
            "nodes": self.nodes,
            "emptySpot": self.empty_spot,
        }
        if self.text_styles:
            payload["textStyles"] = self.text_styles
        if self.variables:
            payload["variables"] = self.variables
        return payload


@dataclass(slots=True)
class ContextBudgetController:
    """Builds a :class:`SceneContext` that stays under ``token_ceiling`` where it can.

    The first pass serializes at the full depth for the scope. When the estimate
    is over the ceiling the roots are serialized once more at the reduced depth;
    there is no further search, so a very broad page can still exceed the ceiling.
    """

    host: Any
    token_ceiling: int = DEFAULT_TOKEN_CEILING
    selection_depth: int = 6
    page_depth: int = 4
    reduced_selection_depth: int = 4
    reduced_page_depth: int = 2

    async def build(self) -> SceneContext:
        page: PageNode = self.host.current_page
        selection: Sequence[SceneNode] = list(self.host.selection)

        text_styles, variables, variable_names = await self._design_tokens()
        serializer = NodeSerializer(self.host, variable_names=variable_names)

        if selection:
            scope: Scope = "selection"
            roots = list(selection)
            depth, reduced_depth = self.selection_depth, self.reduced_selection_depth
            noun = "layer" if len(roots) == 1 else "layers"
            description = f"{len(roots)} {noun} selected"
        else:
            scope = "page"
            roots = list(page.children)
            depth, reduced_depth = self.page_depth, self.reduced_page_depth
            description = f"Page: {page.name}"

        nodes = await serializer.serialize_many(roots, depth)
        estimate = estimate_budget_units(nodes)
        reduced = False
        if estimate > self.token_ceiling:
            LOGGER.info(
                "Scene context estimate %.0f exceeds %d at depth %d; reducing to depth %d",
                estimate,
                self.token_ceiling,
                depth,
                reduced_depth,
            )
            depth = reduced_depth
            nodes = await serializer.serialize_many(roots, depth)
            estimate = estimate_budget_units(nodes)
            reduced = True
            if estimate > self.token_ceiling:
                LOGGER.warning(
                    "Scene context still estimated at %.0f units after reduction (ceiling %d)",
                    estimate,
                    self.token_ceiling,
                )

        document = self.host.document
        return SceneContext(
            file={
                "name": document.name,
                "pages": [
                    {"id": candidate.id, "name": candidate.name, "isCurrent": candidate is page}
                    for candidate in document.pages
                ],
            },
            scope=scope,
            scope_description=description,
            nodes=nodes,
            empty_spot=find_empty_spot(page),
            text_styles=text_styles,
            variables=variables,
            max_depth=depth,
            estimated_tokens=estimate,
            reduced=reduced,
        )

    async def _design_tokens(
        self,
    ) -> tuple[list[dict[str, Any]] | None, list[dict[str, Any]] | None, dict[str, str]]:
        text_styles: list[dict[str, Any]] | None = None
        variables: list[dict[str, Any]] | None = None
        variable_names: dict[str, str] = {}

        styles_getter = getattr(self.host, "get_local_text_styles_async", None)
        if callable(styles_getter):
            try:
                styles = await styles_getter()
            except Exception:
                LOGGER.warning("Could not read local text styles", exc_info=True)
            else:
                text_styles = [
                    {
                        "name": style.name,
                        "fontFamily": style.font_name.family,
                        "fontStyle": style.font_name.style,
                        "fontSize": style.font_size,
                    }
                    for style in styles
                ]

        variables_getter = getattr(self.host, "get_local_variables_async", None)
        if callable(variables_getter):
            try:
                found = await variables_getter()
            except Exception:
                LOGGER.warning("Could not read local variables", exc_info=True)
            else:
                variables = []
                for variable in found:
                    variable_names[variable.id] = variable.qualified_name
                    variables.append(
                        {
                            "collection": variable.collection,
                            "name": variable.name,
                            "type": variable.resolved_type,
                            "value": _format_value(variable.value),
                        }
                    )
        return text_styles, variables, variable_names


def find_empty_spot(page: PageNode, gap: int = EMPTY_SPOT_GAP) -> dict[str, int]:
    """Return a point to the right of the rightmost top-level node on *page*.

    Among siblings sharing the maximum right edge the topmost one supplies ``y``.
    An empty page yields the origin.
    """

    edges: list[tuple[float, float]] = []
    for child in page.children:
        x, width, y = child.x, child.width, child.y
        if x is None or width is None or y is None:
            continue
        edges.append((x + width, y))
    if not edges:
        return {"x": 0, "y": 0}
    max_right = max(right for right, _ in edges)
    top = min(y for right, y in edges if right == max_right)
    return {"x": round_geometry(max_right + gap), "y": round_geometry(top)}


def _format_value(value: Any) -> Any:
    if isinstance(value, (RGB, RGBA)):
        channels = (value.r, value.g, value.b)
        return "#" + "".join(f"{round_geometry(channel * 255):02x}" for channel in channels)
    if isinstance(value, float):
        return round_half_up(value, 3)
    return value


__all__ = [
    "DEFAULT_TOKEN_CEILING",
    "EMPTY_SPOT_GAP",
    "SceneContext",
    "ContextBudgetController",
    "find_empty_spot",
]
