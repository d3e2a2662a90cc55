"""Text, Mermaid and JSON renderers for lineage graphs"""
from typing import Optional, Union

from ..lineage.traversal import compute_traversal
from ..models import LineageGraph, TraversalResult
from .base import LineageRenderer, OutputFormat, describe_node
from .json_renderer import JsonRenderer
from .mermaid import MermaidRenderer
from .text import TextRenderer

RENDERERS = {
    OutputFormat.TEXT: TextRenderer,
    OutputFormat.MERMAID: MermaidRenderer,
    OutputFormat.JSON: JsonRenderer,
}


def get_renderer(fmt: Union[OutputFormat, str], **options) -> LineageRenderer:
    return RENDERERS[OutputFormat.parse(fmt)](**options)


def render(graph: LineageGraph, result: Optional[TraversalResult] = None,
           fmt: Union[OutputFormat, str] = OutputFormat.TEXT, **options) -> str:
    """Render a graph; the traversal result is computed when not given.

    Extra keyword options go to the renderer, e.g. ``max_nodes`` for Mermaid.
    """
    if result is None:
        result = compute_traversal(graph)
    return get_renderer(fmt, **options).render(graph, result)


__all__ = [
    'OutputFormat',
    'LineageRenderer',
    'TextRenderer',
    'MermaidRenderer',
    'JsonRenderer',
    'describe_node',
    'get_renderer',
    'render',
]
