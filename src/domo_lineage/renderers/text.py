from typing import List, Set

from ..models import DOWNSTREAM, UPSTREAM, LineageGraph, TraversalResult
from .base import LineageRenderer, OutputFormat, describe_node

INDENT = "  "


class TextRenderer(LineageRenderer):
    """Indented tree: the root, then its upstream and downstream branches

    A graph without a root is printed as a forest of downstream trees
    starting at every node that has no producers.
    """

    format = OutputFormat.TEXT

    def render(self, graph: LineageGraph, result: TraversalResult) -> str:
        if graph.root_key is None:
            lines = self._render_forest(graph)
        else:
            lines = [describe_node(graph.root)]
            printed: Set[str] = {graph.root_key}

            for title, direction in (("Upstream:", UPSTREAM), ("Downstream:", DOWNSTREAM)):
                lines.append(title)
                section: List[str] = []
                if direction in graph.directions:
                    self._walk(graph, graph.root_key, direction == UPSTREAM, 1, printed, section)
                lines.extend(section or [f"{INDENT}(none)"])

        if not result.complete:
            lines.append("Lineage incomplete")
        return "\n".join(lines)

    def _render_forest(self, graph: LineageGraph) -> List[str]:
        lines = [f"Lineage catalog: {len(graph.nodes)} nodes, {len(graph.edges)} edges"]
        printed: Set[str] = set()
        sources = [key for key in graph.nodes if not graph.upstream_of(key)]
        # Nodes only reachable through cycles have no source above them
        for key in sources + list(graph.nodes):
            if key in printed:
                continue
            printed.add(key)
            lines.append(describe_node(graph.nodes[key]))
            self._walk(graph, key, False, 1, printed, lines)
        return lines

    def _walk(self, graph: LineageGraph, key: str, upstream: bool, level: int,
              printed: Set[str], lines: List[str]) -> None:
        edges = graph.upstream_of(key) if upstream else graph.downstream_of(key)
        for edge in edges:
            neighbor = edge.from_key if upstream else edge.to_key
            if neighbor in printed:
                continue
            printed.add(neighbor)
            lines.append(f"{INDENT * level}{describe_node(graph.nodes[neighbor])}")
            self._walk(graph, neighbor, upstream, level + 1, printed, lines)
