"""Queries over a built LineageGraph"""
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from ..models import (DOWNSTREAM, UPSTREAM, EntityKind, LineageEdge, LineageGraph, LineageNode,
                      TraversalResult, ViaKind)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATHS = 100


@dataclass
class DataPath:
    """One simple downstream path between two nodes"""
    nodes: List[LineageNode] = field(default_factory=list)
    edges: List[LineageEdge] = field(default_factory=list)

    @property
    def distance(self) -> int:
        return len(self.edges)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [node.key for node in self.nodes],
            'edges': [edge.to_dict() for edge in self.edges],
            'distance': self.distance,
        }


def _closure(graph: LineageGraph, start: str, upstream: bool) -> Set[str]:
    reached: Set[str] = set()
    queue = deque([start])
    while queue:
        key = queue.popleft()
        edges = graph.upstream_of(key) if upstream else graph.downstream_of(key)
        for edge in edges:
            neighbor = edge.from_key if upstream else edge.to_key
            if neighbor not in reached:
                reached.add(neighbor)
                queue.append(neighbor)
    reached.discard(start)
    return reached


def _count_kinds(graph: LineageGraph, keys: Iterable[str]) -> Dict[EntityKind, int]:
    return dict(Counter(graph.nodes[key].kind for key in keys))


def compute_traversal(graph: LineageGraph) -> TraversalResult:
    """Transitive ancestors and descendants of the graph's root.

    A direction the graph was not built in has an empty closure, even when
    a cycle (a dataflow reading and writing the same dataset) leads back
    into the root. A rootless graph has no ancestors or descendants; its
    unresolved set covers every node.
    """
    if graph.root_key is None:
        unresolved = {key for key, node in graph.nodes.items() if not node.resolved}
        return TraversalResult(complete=graph.complete and not unresolved, unresolved=unresolved)

    ancestors: Set[str] = set()
    descendants: Set[str] = set()
    if UPSTREAM in graph.directions:
        ancestors = _closure(graph, graph.root_key, upstream=True)
    if DOWNSTREAM in graph.directions:
        descendants = _closure(graph, graph.root_key, upstream=False)

    related = ancestors | descendants
    unresolved = {key for key in related if not graph.nodes[key].resolved}
    unreachable = set(graph.nodes) - related - {graph.root_key}
    if unreachable:
        logger.warning("%d node(s) are not connected to %s", len(unreachable), graph.root_key)

    return TraversalResult(
        ancestors=ancestors,
        descendants=descendants,
        ancestor_counts=_count_kinds(graph, ancestors),
        descendant_counts=_count_kinds(graph, descendants),
        complete=graph.complete and not unresolved,
        unresolved=unresolved,
        unreachable=unreachable,
    )


def _neighbor_entry(node: LineageNode) -> Dict[str, str]:
    entry = {"type": node.kind.value, "id": node.id}
    if node.resolved and node.name:
        entry["name"] = node.name
    return entry


def direct_parents(graph: LineageGraph, key: str) -> Dict[str, Dict[str, str]]:
    """Single-hop producers of a node, keyed "<KIND><ID>" in edge order"""
    if key not in graph:
        raise KeyError(key)
    return {edge.from_key: _neighbor_entry(graph.nodes[edge.from_key]) for edge in graph.upstream_of(key)}


def direct_children(graph: LineageGraph, key: str) -> Dict[str, Dict[str, str]]:
    """Single-hop consumers of a node, keyed "<KIND><ID>" in edge order"""
    if key not in graph:
        raise KeyError(key)
    return {edge.to_key: _neighbor_entry(graph.nodes[edge.to_key]) for edge in graph.downstream_of(key)}


def trace_paths(graph: LineageGraph, source_key: str, target_key: str,
                max_paths: int = DEFAULT_MAX_PATHS) -> List[DataPath]:
    """All simple downstream paths from source to target, depth first"""
    if source_key not in graph or target_key not in graph:
        logger.warning("Source or target not in graph: %s -> %s", source_key, target_key)
        return []

    paths: List[DataPath] = []
    on_path: Set[str] = set()
    nodes: List[LineageNode] = []
    edges: List[LineageEdge] = []

    def visit(key: str) -> None:
        if len(paths) >= max_paths:
            return
        if key == target_key:
            paths.append(DataPath(nodes=nodes + [graph.nodes[key]], edges=list(edges)))
            return
        if key in on_path:
            return

        on_path.add(key)
        nodes.append(graph.nodes[key])
        for edge in graph.downstream_of(key):
            edges.append(edge)
            visit(edge.to_key)
            edges.pop()
        nodes.pop()
        on_path.remove(key)

    visit(source_key)
    logger.info("Found %d path(s) from %s to %s", len(paths), source_key, target_key)
    return paths


def find_orphans(graph: LineageGraph, kind: Optional[EntityKind] = EntityKind.DATASET) -> List[LineageNode]:
    """Nodes with neither producers nor consumers; kind=None means every kind"""
    return [
        node for key, node in graph.nodes.items()
        if (kind is None or node.kind is kind)
        and not graph.upstream_of(key) and not graph.downstream_of(key)
    ]


def graph_statistics(graph: LineageGraph) -> Dict[str, Any]:
    """Summary counts for a graph"""
    node_counts = Counter(node.kind.value for node in graph.nodes.values())
    edge_counts = Counter(edge.via.value for edge in graph.edges)
    return {
        'nodes': len(graph.nodes),
        'edges': len(graph.edges),
        'nodesByKind': {kind: node_counts[kind] for kind in sorted(node_counts)},
        'edgesByVia': {via.value: edge_counts.get(via.value, 0) for via in ViaKind},
        'orphans': len(find_orphans(graph, kind=None)),
        'unresolved': sum(1 for node in graph.nodes.values() if not node.resolved),
        'complete': graph.complete,
    }
