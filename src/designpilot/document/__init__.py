"""Document model, host protocol and the in-memory host."""

from .host import ComponentResolver, DesignHost, DesignTokenSource
from .loader import DocumentFormatError, document_from_dict, document_to_dict, load_document, save_document
from .memory import InMemoryHost
from .nodes import (
    MIXED,
    ComponentNode,
    DocumentRoot,
    FontName,
    FontNotLoadedError,
    FrameNode,
    GroupNode,
    InstanceNode,
    PageNode,
    SceneNode,
    SectionNode,
    ShapeNode,
    TextNode,
    has_children,
)

__all__ = [
    "MIXED",
    "DesignHost",
    "ComponentResolver",
    "DesignTokenSource",
    "InMemoryHost",
    "DocumentFormatError",
    "load_document",
    "save_document",
    "document_from_dict",
    "document_to_dict",
    "DocumentRoot",
    "PageNode",
    "SceneNode",
    "FrameNode",
    "ComponentNode",
    "InstanceNode",
    "GroupNode",
    "SectionNode",
    "ShapeNode",
    "TextNode",
    "FontName",
    "FontNotLoadedError",
    "has_children",
]
