import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .base import LineageSource
from .config import LineageConfig
from .lineage.adapter import EntityStoreAdapter
from .lineage.builder import LineageGraphBuilder
from .lineage.catalog import build_catalog_graph
from .lineage.remote import merge_remote_lineage
from .lineage.traversal import (
    DataPath,
    compute_traversal,
    direct_children,
    direct_parents,
    find_orphans,
    graph_statistics,
    trace_paths,
)
from .models import (DOWNSTREAM, UPSTREAM, EntityKind, LineageGraph, LineageNode, TraversalResult,
                     make_entity_key)
from .renderers import OutputFormat, render

logger = logging.getLogger(__name__)

LINEAGE_ENTITIES = "DATA_SOURCE,DATAFLOW,CARD"
PARENT_ENTITIES = "DATA_SOURCE,DATAFLOW"
CHILD_ENTITIES = "DATA_SOURCE,DATAFLOW,CARD"

DEFAULT_DIAGRAM_NODES = 50


@dataclass
class LineageReport:
    """A built graph, its traversal result and the rendered output"""
    graph: LineageGraph
    result: TraversalResult
    output: str

    @property
    def complete(self) -> bool:
        return self.result.complete


class LineageService:
    """Entry points used by the command layer; returns values, never prints"""

    def __init__(self, adapter: EntityStoreAdapter, lineage_source: Optional[LineageSource] = None,
                 config: Optional[LineageConfig] = None):
        self.adapter = adapter
        self.lineage_source = lineage_source
        self.config = config or LineageConfig()

    async def build_lineage(self, entity_id: str, kind: EntityKind, traverse_up: bool,
                            traverse_down: bool, max_depth: Optional[int] = None,
                            max_nodes: Optional[int] = None) -> LineageGraph:
        """Build a graph through the entity store adapter"""
        builder = LineageGraphBuilder(self.adapter, max_concurrency=self.config.max_concurrency)
        return await builder.build_graph(
            entity_id,
            kind,
            traverse_up,
            traverse_down,
            self.config.lineage_max_depth if max_depth is None else max_depth,
            self.config.lineage_max_nodes if max_nodes is None else max_nodes,
        )

    def show_lineage(self, entity_id: str, kind: EntityKind = EntityKind.DATASET, traverse_up: bool = True,
                     traverse_down: bool = True, fmt: Union[OutputFormat, str] = OutputFormat.TEXT,
                     max_depth: Optional[int] = None, max_nodes: Optional[int] = None) -> LineageReport:
        """Lineage of one entity from cached or live records"""
        graph = asyncio.run(self.build_lineage(entity_id, kind, traverse_up, traverse_down,
                                               max_depth, max_nodes))
        return self._report(graph, fmt)

    def _remote_graph(self, entity_id: str, kind: EntityKind, traverse_up: bool,
                      traverse_down: bool, request_entities: Optional[str]) -> LineageGraph:
        if self.lineage_source is None:
            raise ValueError("Remote lineage needs the API connector; set DOMO_API_HOST and DOMO_API_TOKEN")

        kind = EntityKind(kind)
        logger.debug("Requesting remote lineage for %s %s (up=%s, down=%s, entities=%s)",
                     kind.label, entity_id, traverse_up, traverse_down, request_entities)
        raw = self.lineage_source.get_lineage(kind.value, entity_id, traverse_up, traverse_down,
                                              request_entities)
        graph = merge_remote_lineage(raw, entity_id, kind, max_depth=self.config.remote_max_depth)
        graph.directions = {
            direction for direction, wanted in ((UPSTREAM, traverse_up), (DOWNSTREAM, traverse_down))
            if wanted
        }
        return graph

    def remote_lineage(self, entity_id: str, kind: EntityKind = EntityKind.DATASET, traverse_up: bool = True,
                       traverse_down: bool = True, fmt: Union[OutputFormat, str] = OutputFormat.TEXT,
                       request_entities: Optional[str] = LINEAGE_ENTITIES) -> LineageReport:
        """Lineage of one entity from the vendor lineage endpoint"""
        graph = self._remote_graph(entity_id, kind, traverse_up, traverse_down, request_entities)
        return self._report(graph, fmt)

    def dataset_parents(self, dataset_id: str,
                        request_entities: Optional[str] = PARENT_ENTITIES) -> Dict[str, Dict[str, str]]:
        """Direct parents of a dataset keyed "<KIND><ID>" """
        graph = self._remote_graph(dataset_id, EntityKind.DATASET, True, False, request_entities)
        return direct_parents(graph, graph.root_key)

    def dataset_children(self, dataset_id: str,
                         request_entities: Optional[str] = CHILD_ENTITIES) -> Dict[str, Dict[str, str]]:
        """Direct children of a dataset keyed "<KIND><ID>" """
        graph = self._remote_graph(dataset_id, EntityKind.DATASET, False, True, request_entities)
        return direct_children(graph, graph.root_key)

    def trace_paths(self, source_id: str, source_kind: EntityKind, target_id: str,
                    target_kind: EntityKind, max_depth: Optional[int] = None,
                    max_paths: int = 100) -> List[DataPath]:
        """Downstream paths from one entity to another"""
        graph = asyncio.run(self.build_lineage(source_id, source_kind, False, True, max_depth=max_depth))
        return trace_paths(graph, graph.root_key, make_entity_key(target_kind, target_id),
                           max_paths=max_paths)

    def _catalog(self) -> LineageGraph:
        if self.adapter.source is None:
            raise ValueError("Catalog queries need a record source (API access or an offline export)")
        return build_catalog_graph(self.adapter.source)

    def orphans(self, kind: Optional[EntityKind] = EntityKind.DATASET) -> List[LineageNode]:
        """Entities in the catalog with no lineage edges"""
        return find_orphans(self._catalog(), kind=kind)

    def statistics(self) -> Dict[str, Any]:
        """Node, edge and orphan counts for the catalog"""
        return graph_statistics(self._catalog())

    def catalog_diagram(self, fmt: Union[OutputFormat, str] = OutputFormat.MERMAID,
                        max_nodes: Optional[int] = DEFAULT_DIAGRAM_NODES) -> str:
        """Render the whole catalog; Mermaid output keeps at most max_nodes nodes"""
        fmt = OutputFormat.parse(fmt)
        options = {"max_nodes": max_nodes} if fmt is OutputFormat.MERMAID else {}
        return render(self._catalog(), fmt=fmt, **options)

    @staticmethod
    def _report(graph: LineageGraph, fmt: Union[OutputFormat, str]) -> LineageReport:
        result = compute_traversal(graph)
        return LineageReport(graph=graph, result=result, output=render(graph, result, fmt))
