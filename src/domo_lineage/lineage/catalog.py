"""Whole-catalog lineage graph built from a source's listings"""
import logging

from ..base import EntitySource
from ..errors import MalformedResponseError
from ..models import EntityKind, LineageGraph, LineageNode, ViaKind, make_entity_key, parse_dataflow_record
from .adapter import card_dataset_ids, card_title

logger = logging.getLogger(__name__)


def build_catalog_graph(source: EntitySource) -> LineageGraph:
    """Every listed dataset, dataflow and card, linked by their ports and bindings.

    The graph has no root. Listed entities are resolved; datasets that are
    only referenced by a dataflow or card stay unresolved.
    """
    graph = LineageGraph()

    for raw in source.list_datasets():
        if isinstance(raw, dict) and raw.get("id") is not None:
            graph.add_node(LineageNode(id=str(raw["id"]), kind=EntityKind.DATASET,
                                       name=raw.get("name") or None, resolved=True))

    for raw in source.list_dataflows():
        try:
            dataflow = parse_dataflow_record(raw)
        except MalformedResponseError as e:
            logger.warning("Skipping malformed dataflow in listing: %s", e)
            graph.complete = False
            continue
        if not dataflow.id:
            continue

        node = graph.add_node(LineageNode(id=dataflow.id, kind=EntityKind.DATAFLOW,
                                          name=dataflow.name, resolved=True))
        for port in dataflow.inputs:
            dataset = graph.add_node(LineageNode(id=port.dataset_id, kind=EntityKind.DATASET, hint=port.name))
            graph.add_edge(dataset.key, node.key, ViaKind.DATAFLOW)
        for port in dataflow.outputs:
            dataset = graph.add_node(LineageNode(id=port.dataset_id, kind=EntityKind.DATASET, hint=port.name))
            graph.add_edge(node.key, dataset.key, ViaKind.DATAFLOW)

    for raw in source.list_cards():
        if not isinstance(raw, dict) or raw.get("id") is None:
            continue
        card = graph.add_node(LineageNode(id=str(raw["id"]), kind=EntityKind.CARD,
                                          name=card_title(raw), resolved=True))
        for dataset_id in card_dataset_ids(raw):
            key = make_entity_key(EntityKind.DATASET, dataset_id)
            if key not in graph:
                graph.add_node(LineageNode(id=dataset_id, kind=EntityKind.DATASET))
            graph.add_edge(key, card.key, ViaKind.DIRECT)

    logger.info("Catalog graph has %d nodes and %d edges", len(graph.nodes), len(graph.edges))
    return graph
