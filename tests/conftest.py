import json

import pytest
from unittest.mock import Mock

from domo_lineage.config import LineageConfig
from domo_lineage.errors import NotFoundError
from domo_lineage.models import EntityKind, EntityRecord, NeighborRef, ViaKind


class FakeAdapter:
    """Adapter serving prepared records; values may also be exceptions to raise"""

    def __init__(self, records):
        self.records = records
        self.calls = []

    async def resolve_node(self, entity_id, kind):
        kind = EntityKind(kind)
        self.calls.append((kind, entity_id))
        record = self.records.get((kind, entity_id))
        if record is None:
            raise NotFoundError(kind, entity_id)
        if isinstance(record, Exception):
            raise record
        return record


def record(kind, entity_id, name=None, upstream=(), downstream=()):
    """Shorthand for an EntityRecord; neighbors are (kind, id) or (kind, id, via) tuples"""
    def refs(items):
        return [NeighborRef(item[0], item[1], item[2] if len(item) > 2 else ViaKind.DATAFLOW)
                for item in items]
    return EntityRecord(id=entity_id, kind=kind, name=name or entity_id,
                        upstream=refs(upstream), downstream=refs(downstream))


@pytest.fixture
def make_adapter():
    """Build a FakeAdapter from EntityRecords"""
    def factory(*records_or_errors, errors=None):
        records = {(r.kind, r.id): r for r in records_or_errors}
        for key, error in (errors or {}).items():
            records[key] = error
        return FakeAdapter(records)
    return factory


@pytest.fixture
def d1_f1_c1_adapter(make_adapter):
    """Dataset D1 produced by dataflow F1 and read by card C1"""
    return make_adapter(
        record(EntityKind.DATASET, "D1", "Sales",
               upstream=[(EntityKind.DATAFLOW, "F1")],
               downstream=[(EntityKind.CARD, "C1", ViaKind.DIRECT)]),
        record(EntityKind.DATAFLOW, "F1", "Load sales",
               downstream=[(EntityKind.DATASET, "D1")]),
        record(EntityKind.CARD, "C1", "Revenue",
               upstream=[(EntityKind.DATASET, "D1", ViaKind.DIRECT)]),
    )


@pytest.fixture
def lineage_config():
    """Offline LineageConfig for testing"""
    config = LineageConfig()
    config.offline = True
    return config


@pytest.fixture
def export_data():
    """Exported records: raw -> F1 -> sales, with a card on sales and one unused dataset"""
    return {
        "datasets": [
            {"id": "raw", "name": "Raw Orders"},
            {"id": "sales", "name": "Sales"},
            {"id": "unused", "name": "Unused"},
        ],
        "dataflows": [
            {
                "id": 1,
                "name": "Build sales",
                "inputs": [{"dataSourceId": "raw", "name": "Raw Orders"}],
                "outputs": [{"dataSourceId": "sales", "name": "Sales"}],
            }
        ],
        "cards": [
            {"id": 7, "title": "Revenue", "datasources": [{"dataSourceId": "sales"}]},
        ],
    }


@pytest.fixture
def export_file(tmp_path, export_data):
    """export_data written to a JSON file"""
    path = tmp_path / "export.json"
    path.write_text(json.dumps(export_data))
    return path


@pytest.fixture
def remote_response():
    """Lineage API response for dataset abc with one parent chain and one card"""
    return {
        "DATA_SOURCEabc": {
            "type": "DATA_SOURCE",
            "id": "abc",
            "complete": True,
            "ancestorCounts": {"DATAFLOW": 1, "DATA_SOURCE": 1},
            "descendantCounts": {"CARD": 1},
            "parents": [
                {
                    "type": "DATAFLOW",
                    "id": "42",
                    "complete": True,
                    "parents": [{"type": "DATA_SOURCE", "id": "src", "complete": True}],
                }
            ],
            "children": [{"type": "CARD", "id": "900", "complete": True}],
        },
        "DATAFLOW42": {"type": "DATAFLOW", "id": "42", "name": "Nightly ETL"},
        "DATA_SOURCEsrc": {"type": "DATA_SOURCE", "id": "src", "name": "Source Table"},
    }


@pytest.fixture
def mock_lineage_source(remote_response):
    """Mock lineage source returning remote_response"""
    source = Mock()
    source.get_lineage.return_value = remote_response
    return source
