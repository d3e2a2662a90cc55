import json

from ..models import LineageGraph, TraversalResult
from .base import LineageRenderer, OutputFormat


class JsonRenderer(LineageRenderer):
    """Canonical JSON document; nodes sorted by key"""

    format = OutputFormat.JSON

    def __init__(self, indent: int = 2):
        self.indent = indent

    def render(self, graph: LineageGraph, result: TraversalResult) -> str:
        traversal = result.to_dict()
        data = {
            "root": graph.root_key,
            "nodes": [graph.nodes[key].to_dict() for key in sorted(graph.nodes)],
            "edges": [edge.to_dict() for edge in graph.edges],
            "ancestors": traversal["ancestors"],
            "descendants": traversal["descendants"],
            "ancestorCounts": traversal["ancestorCounts"],
            "descendantCounts": traversal["descendantCounts"],
            "complete": result.complete,
        }
        if graph.reported_counts:
            data["reportedCounts"] = {
                field: dict(sorted(counts.items()))
                for field, counts in sorted(graph.reported_counts.items())
            }
        return json.dumps(data, indent=self.indent)
