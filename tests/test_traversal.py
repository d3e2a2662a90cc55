import pytest

from domo_lineage.lineage.traversal import (
    compute_traversal,
    direct_children,
    direct_parents,
    find_orphans,
    graph_statistics,
    trace_paths,
)
from domo_lineage.models import EntityKind, LineageGraph, LineageNode, ViaKind


@pytest.fixture
def diamond():
    """src -> f1 -> out, src -> f2 -> out, out -> card; plus a loose dataset"""
    graph = LineageGraph("DATA_SOURCEsrc")
    graph.add_node(LineageNode("src", EntityKind.DATASET, "Source", resolved=True))
    graph.add_node(LineageNode("f1", EntityKind.DATAFLOW, "Flow 1", resolved=True))
    graph.add_node(LineageNode("f2", EntityKind.DATAFLOW))
    graph.add_node(LineageNode("out", EntityKind.DATASET, "Output", resolved=True))
    graph.add_node(LineageNode("k", EntityKind.CARD, "Card", resolved=True))
    graph.add_node(LineageNode("loose", EntityKind.DATASET, "Loose", resolved=True))
    graph.add_edge("DATA_SOURCEsrc", "DATAFLOWf1")
    graph.add_edge("DATA_SOURCEsrc", "DATAFLOWf2")
    graph.add_edge("DATAFLOWf1", "DATA_SOURCEout")
    graph.add_edge("DATAFLOWf2", "DATA_SOURCEout")
    graph.add_edge("DATA_SOURCEout", "CARDk", ViaKind.DIRECT)
    return graph


def test_descendants_and_counts(diamond):
    result = compute_traversal(diamond)

    assert result.ancestors == set()
    assert result.descendants == {"DATAFLOWf1", "DATAFLOWf2", "DATA_SOURCEout", "CARDk"}
    assert result.descendant_counts == {
        EntityKind.DATAFLOW: 2,
        EntityKind.DATASET: 1,
        EntityKind.CARD: 1,
    }
    assert result.unresolved == {"DATAFLOWf2"}
    assert result.unreachable == {"DATA_SOURCEloose"}
    assert result.complete is False


def test_ancestors_from_middle():
    graph = LineageGraph("DATA_SOURCEb")
    for node_id in ("a", "b"):
        graph.add_node(LineageNode(node_id, EntityKind.DATASET, resolved=True))
    graph.add_node(LineageNode("f", EntityKind.DATAFLOW, resolved=True))
    graph.add_edge("DATA_SOURCEa", "DATAFLOWf")
    graph.add_edge("DATAFLOWf", "DATA_SOURCEb")

    result = compute_traversal(graph)
    assert result.ancestors == {"DATA_SOURCEa", "DATAFLOWf"}
    assert result.ancestor_counts == {EntityKind.DATASET: 1, EntityKind.DATAFLOW: 1}
    assert result.complete is True


def test_root_excluded_even_in_cycles():
    graph = LineageGraph("DATA_SOURCEa")
    graph.add_node(LineageNode("a", EntityKind.DATASET, resolved=True))
    graph.add_node(LineageNode("b", EntityKind.DATASET, resolved=True))
    graph.add_edge("DATA_SOURCEa", "DATA_SOURCEb")
    graph.add_edge("DATA_SOURCEb", "DATA_SOURCEa")

    result = compute_traversal(graph)
    assert result.ancestors == {"DATA_SOURCEb"}
    assert result.descendants == {"DATA_SOURCEb"}


def test_graph_incompleteness_propagates(diamond):
    diamond.nodes["DATAFLOWf2"].mark_resolved("Flow 2")
    assert compute_traversal(diamond).complete is True

    diamond.complete = False
    assert compute_traversal(diamond).complete is False


def test_direct_neighbors(diamond):
    children = direct_children(diamond, "DATA_SOURCEsrc")
    assert list(children) == ["DATAFLOWf1", "DATAFLOWf2"]
    assert children["DATAFLOWf1"] == {"type": "DATAFLOW", "id": "f1", "name": "Flow 1"}
    assert children["DATAFLOWf2"] == {"type": "DATAFLOW", "id": "f2"}

    parents = direct_parents(diamond, "DATA_SOURCEout")
    assert list(parents) == ["DATAFLOWf1", "DATAFLOWf2"]

    with pytest.raises(KeyError):
        direct_parents(diamond, "CARDmissing")


def test_trace_paths(diamond):
    paths = trace_paths(diamond, "DATA_SOURCEsrc", "CARDk")

    assert len(paths) == 2
    assert [n.key for n in paths[0].nodes] == ["DATA_SOURCEsrc", "DATAFLOWf1", "DATA_SOURCEout", "CARDk"]
    assert paths[0].distance == 3
    assert trace_paths(diamond, "CARDk", "DATA_SOURCEsrc") == []
    assert trace_paths(diamond, "DATA_SOURCEsrc", "CARDnope") == []
    assert len(trace_paths(diamond, "DATA_SOURCEsrc", "CARDk", max_paths=1)) == 1


def test_orphans_and_statistics(diamond):
    orphans = find_orphans(diamond)
    assert [n.key for n in orphans] == ["DATA_SOURCEloose"]
    assert find_orphans(diamond, kind=EntityKind.CARD) == []

    stats = graph_statistics(diamond)
    assert stats["nodes"] == 6
    assert stats["edges"] == 5
    assert stats["nodesByKind"] == {"CARD": 1, "DATAFLOW": 2, "DATA_SOURCE": 3}
    assert stats["edgesByVia"] == {"DATAFLOW": 4, "DIRECT": 1}
    assert stats["orphans"] == 1
    assert stats["unresolved"] == 1
