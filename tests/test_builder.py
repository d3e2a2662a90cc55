import asyncio
from collections import deque

import pytest

from conftest import record
from domo_lineage.errors import NotFoundError, UpstreamUnavailableError
from domo_lineage.lineage.builder import LineageGraphBuilder, build_graph
from domo_lineage.lineage.traversal import compute_traversal
from domo_lineage.models import EntityKind, EntityRecord, NeighborRef
from domo_lineage.renderers import render


D = EntityKind.DATASET
F = EntityKind.DATAFLOW
C = EntityKind.CARD


def build(adapter, root_id, root_kind=D, up=True, down=True, max_depth=3, max_nodes=500):
    return asyncio.run(build_graph(adapter, root_id, root_kind, up, down, max_depth, max_nodes))


def chain_adapter(make_adapter, length):
    """Datasets d0 -> d1 -> ... -> d{length-1}"""
    records = []
    for i in range(length):
        upstream = [(D, f"d{i - 1}")] if i > 0 else []
        downstream = [(D, f"d{i + 1}")] if i < length - 1 else []
        records.append(record(D, f"d{i}", upstream=upstream, downstream=downstream))
    return make_adapter(*records)


def hops_from_root(graph):
    """Undirected hop count from the root"""
    adjacency = {key: set() for key in graph.nodes}
    for edge in graph.edges:
        adjacency[edge.from_key].add(edge.to_key)
        adjacency[edge.to_key].add(edge.from_key)
    hops = {graph.root_key: 0}
    queue = deque([graph.root_key])
    while queue:
        key = queue.popleft()
        for neighbor in adjacency[key]:
            if neighbor not in hops:
                hops[neighbor] = hops[key] + 1
                queue.append(neighbor)
    return hops


def test_root_only_scenario(d1_f1_c1_adapter):
    graph = build(d1_f1_c1_adapter, "D1")
    result = compute_traversal(graph)

    assert result.ancestors == {"DATAFLOWF1"}
    assert result.descendants == {"CARDC1"}
    assert result.ancestor_counts == {F: 1}
    assert result.descendant_counts == {C: 1}
    assert result.complete is True
    assert graph.nodes["DATAFLOWF1"].resolved
    assert graph.nodes["CARDC1"].resolved


@pytest.mark.parametrize("max_depth", [0, 1, 2, 4])
def test_depth_bound(make_adapter, max_depth):
    adapter = chain_adapter(make_adapter, 10)
    graph = build(adapter, "d5", max_depth=max_depth)

    hops = hops_from_root(graph)
    assert max(hops.values()) <= max_depth
    assert len(graph.nodes) == 1 + 2 * max_depth
    assert graph.complete is False


def test_depth_bound_leaves_stubs(make_adapter):
    adapter = chain_adapter(make_adapter, 5)
    graph = build(adapter, "d0", up=False, max_depth=2)

    assert list(graph.nodes) == ["DATA_SOURCEd0", "DATA_SOURCEd1", "DATA_SOURCEd2"]
    assert graph.nodes["DATA_SOURCEd1"].resolved
    assert not graph.nodes["DATA_SOURCEd2"].resolved
    assert (D, "d2") not in adapter.calls


def test_full_chain_within_depth_is_complete(make_adapter):
    adapter = chain_adapter(make_adapter, 3)
    graph = build(adapter, "d0", up=False, max_depth=5)

    assert len(graph.nodes) == 3
    assert graph.complete is True


def test_referential_integrity(make_adapter):
    adapter = make_adapter(
        record(D, "a", downstream=[(F, "f1"), (F, "f2")]),
        record(F, "f1", upstream=[(D, "a")], downstream=[(D, "b")]),
        record(F, "f2", upstream=[(D, "a")], downstream=[(D, "b"), (D, "c")]),
        record(D, "b", upstream=[(F, "f1"), (F, "f2")], downstream=[(C, "k")]),
        record(D, "c", upstream=[(F, "f2")]),
        record(C, "k", upstream=[(D, "b")]),
    )
    graph = build(adapter, "a", max_depth=10)

    for edge in graph.edges:
        assert edge.from_key in graph.nodes
        assert edge.to_key in graph.nodes
    assert len(set(graph.edges)) == len(graph.edges)
    assert len(graph.nodes) == 6


def test_cycle_is_visited_once(make_adapter):
    adapter = make_adapter(
        record(D, "A", upstream=[(D, "B")], downstream=[(D, "B")]),
        record(D, "B", upstream=[(D, "A")], downstream=[(D, "A")]),
    )
    graph = build(adapter, "A", max_depth=50)

    assert set(graph.nodes) == {"DATA_SOURCEA", "DATA_SOURCEB"}
    assert sorted(adapter.calls) == [(D, "A"), (D, "B")]


def test_self_loop_is_ignored(make_adapter):
    adapter = make_adapter(record(D, "a", upstream=[(D, "a")], downstream=[(D, "a")]))
    graph = build(adapter, "a")

    assert graph.edges == []
    assert graph.complete is True


def test_partial_failure(make_adapter):
    adapter = make_adapter(
        record(D, "root", downstream=[(F, "good"), (F, "bad")]),
        record(F, "good", upstream=[(D, "root")], downstream=[(D, "out")]),
        record(D, "out", upstream=[(F, "good")]),
        errors={(F, "bad"): UpstreamUnavailableError("timeout")},
    )
    graph = build(adapter, "root", max_depth=5)

    assert {"DATAFLOWgood", "DATAFLOWbad", "DATA_SOURCEout"} <= set(graph.nodes)
    assert graph.nodes["DATA_SOURCEout"].resolved
    assert not graph.nodes["DATAFLOWbad"].resolved
    assert graph.complete is False
    assert compute_traversal(graph).complete is False


def test_missing_neighbor_degrades_to_stub(make_adapter):
    adapter = make_adapter(record(D, "root", downstream=[(C, "gone")]))
    graph = build(adapter, "root")

    assert not graph.nodes["CARDgone"].resolved
    assert graph.complete is False


def test_missing_root_raises(make_adapter):
    with pytest.raises(NotFoundError):
        build(make_adapter(), "nowhere")


def test_unavailable_root_degrades(make_adapter):
    adapter = make_adapter(errors={(D, "root"): UpstreamUnavailableError("offline")})
    graph = build(adapter, "root")

    assert list(graph.nodes) == ["DATA_SOURCEroot"]
    assert not graph.root.resolved
    assert graph.complete is False


def test_downstream_only_has_no_ancestors(d1_f1_c1_adapter):
    graph = build(d1_f1_c1_adapter, "D1", up=False, down=True)
    result = compute_traversal(graph)

    assert result.ancestors == set()
    assert result.descendants == {"CARDC1"}


def recursive_adapter(make_adapter):
    """Dataflow F reads D1 and writes back to D1 and to D2"""
    return make_adapter(
        record(D, "D1", upstream=[(F, "F")], downstream=[(F, "F")]),
        record(F, "F", upstream=[(D, "D1")], downstream=[(D, "D1"), (D, "D2")]),
        record(D, "D2", upstream=[(F, "F")]),
    )


def test_recursive_dataflow_downstream_only(make_adapter):
    graph = build(recursive_adapter(make_adapter), "D1", up=False, max_depth=5)
    result = compute_traversal(graph)

    assert result.ancestors == set()
    assert result.ancestor_counts == {}
    assert result.descendants == {"DATAFLOWF", "DATA_SOURCED2"}
    assert result.complete is True
    assert render(graph, result, "text").splitlines()[1:3] == ["Upstream:", "  (none)"]


def test_recursive_dataflow_upstream_only(make_adapter):
    graph = build(recursive_adapter(make_adapter), "D1", down=False, max_depth=5)
    result = compute_traversal(graph)

    assert result.ancestors == {"DATAFLOWF"}
    assert result.descendants == set()
    assert result.descendant_counts == {}
    assert render(graph, result, "text").splitlines()[-2:] == ["Downstream:", "  (none)"]


def test_recursive_dataflow_both_directions(make_adapter):
    graph = build(recursive_adapter(make_adapter), "D1", max_depth=5)
    result = compute_traversal(graph)

    assert result.ancestors == {"DATAFLOWF"}
    assert result.descendants == {"DATAFLOWF", "DATA_SOURCED2"}


def test_stub_keeps_port_name_as_hint(make_adapter):
    root = EntityRecord(id="root", kind=D, name="Root",
                        downstream=[NeighborRef(F, "f", name="Port label")])
    graph = build(make_adapter(root), "root", up=False, max_depth=1)

    stub = graph.nodes["DATAFLOWf"]
    assert not stub.resolved
    assert stub.name is None
    assert stub.hint == "Port label"
    assert stub.to_dict()["name"] is None


def test_upstream_nodes_only_expand_upstream(make_adapter):
    adapter = make_adapter(
        record(D, "root", upstream=[(F, "f")]),
        record(F, "f", upstream=[(D, "src")], downstream=[(D, "root"), (D, "sibling")]),
        record(D, "src", downstream=[(F, "f")]),
        record(D, "sibling", upstream=[(F, "f")]),
    )
    graph = build(adapter, "root", down=False, max_depth=5)

    assert "DATA_SOURCEsibling" not in graph.nodes
    assert "DATA_SOURCEsrc" in graph.nodes


def test_max_nodes_truncates(make_adapter):
    adapter = chain_adapter(make_adapter, 20)
    graph = build(adapter, "d0", up=False, max_depth=50, max_nodes=4)

    assert len(graph.nodes) == 4
    assert graph.complete is False


def test_edge_order_follows_adapter_order(make_adapter):
    adapter = make_adapter(
        record(D, "root", downstream=[(F, "z"), (F, "a"), (F, "m")]),
        record(F, "z"), record(F, "a"), record(F, "m"),
    )
    graph = build(adapter, "root")

    assert [e.to_key for e in graph.edges] == ["DATAFLOWz", "DATAFLOWa", "DATAFLOWm"]


def test_concurrency_is_bounded(make_adapter):
    class SlowAdapter:
        def __init__(self, inner):
            self.inner = inner
            self.active = 0
            self.peak = 0

        async def resolve_node(self, entity_id, kind):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1
            return await self.inner.resolve_node(entity_id, kind)

    children = [(F, f"f{i}") for i in range(10)]
    inner = make_adapter(record(D, "root", downstream=children), *[record(F, f"f{i}") for i in range(10)])
    adapter = SlowAdapter(inner)

    graph = asyncio.run(LineageGraphBuilder(adapter, max_concurrency=3).build_graph("root", D, False, True, 2, 100))

    assert len(graph.nodes) == 11
    assert adapter.peak <= 3


def test_invalid_bounds():
    with pytest.raises(ValueError):
        LineageGraphBuilder(None, max_concurrency=0)
    with pytest.raises(ValueError):
        asyncio.run(LineageGraphBuilder(None).build_graph("x", D, True, True, -1, 10))
