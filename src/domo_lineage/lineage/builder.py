"""Bounded breadth-first lineage graph construction

Expands an entity layer by layer through an :class:`EntityStoreAdapter`,
fetching the nodes of one layer concurrently. Visited bookkeeping happens
while a finished layer is processed, so no node is ever dispatched twice.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..errors import LineageError, NotFoundError
from ..models import (DOWNSTREAM, UPSTREAM, EntityKind, EntityRecord, LineageGraph, LineageNode,
                      make_entity_key)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8


class LineageGraphBuilder:
    """Builds a LineageGraph around one root entity"""

    def __init__(self, adapter, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.adapter = adapter
        self.max_concurrency = max_concurrency

    async def build_graph(self, root_id: str, root_kind: EntityKind, traverse_up: bool,
                          traverse_down: bool, max_depth: int, max_nodes: int) -> LineageGraph:
        """Traverse from the root in the requested directions.

        Args:
            root_id: Vendor id of the starting entity
            root_kind: Kind of the starting entity
            traverse_up: Follow producers (ancestors)
            traverse_down: Follow consumers (descendants)
            max_depth: Hops from the root after which nodes stay unexpanded stubs
            max_nodes: Total node budget; reaching it stops the traversal

        Raises:
            NotFoundError: The root itself does not exist
        """
        if max_depth < 0:
            raise ValueError("max_depth must not be negative")
        if max_nodes < 1:
            raise ValueError("max_nodes must be at least 1")

        root_kind = EntityKind(root_kind)
        root_key = make_entity_key(root_kind, root_id)
        directions = tuple(
            direction for direction, wanted in ((UPSTREAM, traverse_up), (DOWNSTREAM, traverse_down))
            if wanted
        )
        graph = LineageGraph(root_key, directions)
        graph.add_node(LineageNode(id=str(root_id), kind=root_kind))
        semaphore = asyncio.Semaphore(self.max_concurrency)
        layer: List[Tuple[str, Tuple[str, ...]]] = [(root_key, directions)]
        depth = 0
        truncated = False

        while layer:
            logger.debug("Resolving %d node(s) at depth %d", len(layer), depth)
            results = await asyncio.gather(
                *(self._fetch(graph.nodes[key], semaphore) for key, _ in layer)
            )

            # Directions per queued node; a node reached both ways in one layer expands both ways
            pending: Dict[str, List[str]] = {}
            for (key, node_directions), (record, error) in zip(layer, results):
                node = graph.nodes[key]
                if error is not None:
                    if key == root_key and isinstance(error, NotFoundError):
                        raise error
                    logger.warning("Leaving %s unresolved: %s", key, error)
                    graph.complete = False
                    continue

                node.mark_resolved(record.name)
                for direction in node_directions:
                    neighbors = record.upstream if direction == UPSTREAM else record.downstream
                    if not neighbors:
                        continue
                    if depth >= max_depth:
                        graph.complete = False
                        continue

                    for ref in neighbors:
                        neighbor_key = ref.key
                        if neighbor_key == key:
                            logger.debug("Ignoring self-loop on %s", key)
                            continue

                        if neighbor_key not in graph:
                            if truncated or len(graph.nodes) >= max_nodes:
                                if not truncated:
                                    logger.info("Node limit of %d reached; stopping traversal", max_nodes)
                                truncated = True
                                graph.complete = False
                                continue
                            graph.add_node(LineageNode(id=ref.id, kind=ref.kind, hint=ref.name))
                            if depth + 1 < max_depth:
                                pending[neighbor_key] = [direction]
                            else:
                                # Stub at the depth limit
                                graph.complete = False
                        elif neighbor_key in pending and direction not in pending[neighbor_key]:
                            pending[neighbor_key].append(direction)

                        if direction == UPSTREAM:
                            added = graph.add_edge(neighbor_key, key, ref.via)
                        else:
                            added = graph.add_edge(key, neighbor_key, ref.via)
                        if not added:
                            logger.debug("Ignoring duplicate edge between %s and %s", key, neighbor_key)

            if truncated:
                break
            layer = [(key, tuple(node_directions)) for key, node_directions in pending.items()]
            depth += 1

        logger.info("Built lineage graph for %s: %d nodes, %d edges, complete=%s",
                    root_key, len(graph.nodes), len(graph.edges), graph.complete)
        return graph

    async def _fetch(self, node: LineageNode,
                     semaphore: asyncio.Semaphore) -> Tuple[Optional[EntityRecord], Optional[LineageError]]:
        async with semaphore:
            try:
                return await self.adapter.resolve_node(node.id, node.kind), None
            except LineageError as e:
                return None, e


async def build_graph(adapter, root_id: str, root_kind: EntityKind, traverse_up: bool,
                      traverse_down: bool, max_depth: int = 3, max_nodes: int = 500,
                      max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> LineageGraph:
    """Build a lineage graph with a one-off builder"""
    builder = LineageGraphBuilder(adapter, max_concurrency=max_concurrency)
    return await builder.build_graph(root_id, root_kind, traverse_up, traverse_down,
                                     max_depth, max_nodes)
