from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from ..models import LineageGraph, LineageNode, TraversalResult


class OutputFormat(str, Enum):
    """Render targets"""
    TEXT = "text"
    MERMAID = "mermaid"
    JSON = "json"

    @classmethod
    def parse(cls, value) -> "OutputFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(f.value for f in cls)
            raise ValueError(f"Unknown output format {value!r}; expected one of: {choices}") from None


class LineageRenderer(ABC):
    """Base interface for graph renderers"""

    format: Optional[OutputFormat] = None

    @abstractmethod
    def render(self, graph: LineageGraph, result: TraversalResult) -> str:
        """Render a graph and its traversal result to a string"""
        pass


def describe_node(node: LineageNode) -> str:
    """<kind> (<id>) [<name or "unresolved">]"""
    return f"{node.kind.label} ({node.id}) [{node.display_name}]"
