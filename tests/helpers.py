"""Shared test helpers and stub classes.

Import from here instead of duplicating document builders and fake clients in
individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Any

from designpilot.document.nodes import (
    RGB,
    DocumentRoot,
    FontName,
    FrameNode,
    ImagePaint,
    PageNode,
    ShapeNode,
    SolidPaint,
    TextNode,
    TextStyle,
    Variable,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"


def build_document() -> DocumentRoot:
    """Two pages; ``Home`` holds a header with a title and logo, and a card with a photo."""

    header = FrameNode(
        id="1:2",
        name="Header",
        x=0,
        y=0,
        width=1440,
        height=80,
        fills=[SolidPaint(color=RGB(1, 1, 1))],
        layout_mode="HORIZONTAL",
        padding_left=24,
        padding_right=24,
        item_spacing=16,
        children=[
            TextNode(
                id="1:3",
                name="Title",
                x=24,
                y=24,
                width=200,
                height=32,
                characters="Dashboard",
                font_size=24,
                font_name=FontName("Inter", "Bold"),
            ),
            ShapeNode(id="1:4", name="Logo", shape="ELLIPSE", x=240, y=20, width=40, height=40),
        ],
    )
    card = FrameNode(
        id="1:5",
        name="Card",
        x=0,
        y=120,
        width=320,
        height=200,
        corner_radius=8,
        children=[
            ShapeNode(
                id="1:6",
                name="Photo",
                x=0,
                y=0,
                width=320,
                height=160,
                fills=[ImagePaint(image_hash="img-1")],
            )
        ],
    )
    return DocumentRoot(
        name="Dashboard",
        pages=[
            PageNode(id="0:1", name="Home", children=[header, card]),
            PageNode(id="0:2", name="Archive"),
        ],
        text_styles=[TextStyle(id="S:1", name="Heading", font_name=FontName("Inter", "Bold"), font_size=24)],
        variables=[Variable(id="V:1", name="primary", collection="Brand", value=RGB(0, 0.4, 1))],
        images={"img-1": PNG_BYTES},
    )


def build_nested_tree() -> FrameNode:
    """A root frame whose eight leaves sit three levels below it (2 x 2 x 2)."""

    return FrameNode(
        id="root",
        name="Root",
        width=800,
        height=600,
        children=[
            FrameNode(
                id=f"a{i}",
                name=f"Column {i}",
                children=[
                    FrameNode(
                        id=f"a{i}b{j}",
                        name=f"Row {i}.{j}",
                        children=[
                            ShapeNode(id=f"a{i}b{j}c{k}", name=f"Cell {i}.{j}.{k}", width=10, height=10)
                            for k in range(2)
                        ],
                    )
                    for j in range(2)
                ],
            )
            for i in range(2)
        ],
    )


class FakeModelClient:
    """Stands in for :class:`designpilot.ai.client.ModelClient`.

    ``replies`` are consumed in order; an exception instance is raised instead
    of returned.
    """

    def __init__(self, replies: list[Any] | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[dict[str, Any]] = []
        self.pings = 0
        self.ping_error: BaseException | None = None
        self.closed = False

    async def complete(self, messages: Any, *, system: str, context: Any = None, max_tokens: Any = None) -> str:
        self.calls.append({"messages": list(messages), "system": system, "context": context})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error

    async def aclose(self) -> None:
        self.closed = True


class BlockingModelClient(FakeModelClient):
    """Never answers; ``started`` is set once a request is in flight."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def complete(self, messages: Any, *, system: str, context: Any = None, max_tokens: Any = None) -> str:
        self.calls.append({"messages": list(messages), "system": system, "context": context})
        self.started.set()
        await asyncio.Event().wait()
        return ""  # pragma: no cover
