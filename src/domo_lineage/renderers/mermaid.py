import logging
from typing import Optional

from ..models import EntityKind, LineageGraph, LineageNode, TraversalResult, parse_entity_key
from .base import LineageRenderer, OutputFormat

logger = logging.getLogger(__name__)

# Node shape brackets per kind
SHAPES = {
    EntityKind.DATASET: ("[", "]"),
    EntityKind.DATAFLOW: ("(", ")"),
    EntityKind.CARD: ("[/", "/]"),
    EntityKind.ALERT: ("{{", "}}"),
}

CLASS_DEFS = [
    "classDef dataset fill:#e1f5fe,stroke:#01579b,stroke-width:2px",
    "classDef dataflow fill:#f3e5f5,stroke:#4a148c,stroke-width:2px",
    "classDef card fill:#fff3e0,stroke:#e65100,stroke-width:2px",
    "classDef alert fill:#ffebee,stroke:#b71c1c,stroke-width:2px",
    "classDef root stroke-width:4px",
]


def _escape(text: str) -> str:
    return "".join(c if c.isascii() and c.isalnum() else f"_{ord(c):x}_" for c in text)


def mermaid_id(key: str) -> str:
    """Mermaid-safe node id; distinct entity keys always give distinct ids.

    The kind prefix is kept as is and every non-alphanumeric character of
    the entity id becomes ``_<hex>_``.
    """
    try:
        kind, entity_id = parse_entity_key(key)
    except ValueError:
        return _escape(key)
    return kind.value + _escape(entity_id)


def mermaid_label(node: LineageNode) -> str:
    if node.resolved and node.name:
        return '"{}"'.format(node.name.replace('"', "'"))
    return node.id.replace('"', "'")


class MermaidRenderer(LineageRenderer):
    """Mermaid flowchart source; edges keep discovery order

    With ``max_nodes`` set, only the first nodes in insertion order are
    drawn, together with the edges between them.
    """

    format = OutputFormat.MERMAID

    def __init__(self, max_nodes: Optional[int] = None):
        if max_nodes is not None and max_nodes < 1:
            raise ValueError("max_nodes must be at least 1")
        self.max_nodes = max_nodes

    def render(self, graph: LineageGraph, result: TraversalResult) -> str:
        keys = list(graph.nodes)
        lines = ["graph TD"]
        if self.max_nodes is not None and len(keys) > self.max_nodes:
            logger.info("Drawing %d of %d nodes", self.max_nodes, len(keys))
            lines.append(f"    %% showing {self.max_nodes} of {len(keys)} nodes")
            keys = keys[:self.max_nodes]
        shown = set(keys)

        for key in keys:
            node = graph.nodes[key]
            start, end = SHAPES[node.kind]
            lines.append(f"    {mermaid_id(key)}{start}{mermaid_label(node)}{end}:::{node.kind.label}")

        for edge in graph.edges:
            if edge.from_key in shown and edge.to_key in shown:
                lines.append(f"    {mermaid_id(edge.from_key)} --> {mermaid_id(edge.to_key)}")

        lines.append("")
        lines.extend(f"    {class_def}" for class_def in CLASS_DEFS)
        if graph.root_key in shown:
            lines.append(f"    class {mermaid_id(graph.root_key)} root")
        return "\n".join(lines)
