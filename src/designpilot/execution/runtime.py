"""Compilation and namespace setup for approved proposal scripts.

Scripts are plain Python source written as the body of an async function, so
they can ``await`` host calls directly. They run in-process with full
builtins: the operator's approval is the only gate.
"""

from __future__ import annotations

import ast
import builtins
import textwrap
from types import CodeType
from typing import Any, Callable, Dict

from ..document import nodes as node_types
from ..document.nodes import FontName

SCRIPT_FILENAME = "<proposal>"
ENTRYPOINT = "__designpilot_script__"

_EXPORTED_TYPES = (
    "RGB",
    "RGBA",
    "SolidPaint",
    "GradientPaint",
    "GradientStop",
    "ImagePaint",
    "Effect",
    "FontName",
    "FrameNode",
    "ComponentNode",
    "InstanceNode",
    "GroupNode",
    "SectionNode",
    "ShapeNode",
    "TextNode",
    "PageNode",
    "MIXED",
)
_HOST_FACTORIES = ("create_frame", "create_rectangle", "create_ellipse", "create_text", "create_page")


def compile_script(script_text: str) -> CodeType:
    """Wrap *script_text* in the entrypoint coroutine and compile it.

    Raises :class:`SyntaxError` for source that does not compile.
    """

    body = textwrap.dedent(script_text or "").strip("\n")
    # parsed as-is so string literals spanning lines keep their text
    parsed = compile(body, SCRIPT_FILENAME, "exec", ast.PyCF_ONLY_AST | ast.PyCF_ALLOW_TOP_LEVEL_AWAIT)
    module = ast.parse(f"async def {ENTRYPOINT}():\n    pass\n", SCRIPT_FILENAME, "exec")
    if parsed.body:
        module.body[0].body = parsed.body  # type: ignore[attr-defined]
    ast.fix_missing_locations(module)
    return compile(module, SCRIPT_FILENAME, "exec")


def build_namespace(host: Any) -> Dict[str, Any]:
    """Return fresh globals for one script run against *host*."""

    async def load_font(family: str | FontName, style: str = "Regular") -> None:
        if isinstance(family, FontName):
            family, style = family.family, family.style
        await host.load_font_async(family, style)

    namespace: Dict[str, Any] = {
        "__builtins__": builtins,
        "__name__": "__proposal__",
        "host": host,
        "document": host.document,
        "page": host.current_page,
        "selection": list(host.selection),
        "notify": host.notify,
        "load_font": load_font,
    }
    get_node = getattr(host, "get_node_by_id_async", None)
    if callable(get_node):
        namespace["get_node"] = get_node
    for name in _HOST_FACTORIES:
        factory: Callable[..., Any] | None = getattr(host, name, None)
        if callable(factory):
            namespace[name] = factory
    for name in _EXPORTED_TYPES:
        namespace[name] = getattr(node_types, name)
    return namespace


async def run_script(code: CodeType, namespace: Dict[str, Any]) -> None:
    exec(code, namespace)
    await namespace[ENTRYPOINT]()


__all__ = ["SCRIPT_FILENAME", "ENTRYPOINT", "compile_script", "build_namespace", "run_script"]
