import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..base import EntitySource
from ..errors import MalformedResponseError


class JsonFileSource(EntitySource):
    """Offline source backed by an exported JSON document

    The document holds three lists keyed "datasets", "dataflows" and "cards".
    """

    def __init__(self, json_file: Union[str, Path]):
        self.json_file = Path(json_file)
        self._records = None

    def fetch_data(self) -> Dict[str, List[Dict[str, Any]]]:
        """Load the export once"""
        if self._records is None:
            with open(self.json_file, 'r') as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise MalformedResponseError(f"{self.json_file} must hold a JSON object")
            self._records = {
                section: self._index(raw.get(section) or [], section)
                for section in ("datasets", "dataflows", "cards")
            }
        return self._records

    @staticmethod
    def _index(records: Any, section: str) -> Dict[str, Dict[str, Any]]:
        if not isinstance(records, list):
            raise MalformedResponseError(f"Section {section!r} must be a list")
        indexed = {}
        for record in records:
            if isinstance(record, dict) and record.get("id") is not None:
                indexed[str(record["id"])] = record
        return indexed

    def get_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        return self.fetch_data()["datasets"].get(str(dataset_id))

    def get_dataflow(self, dataflow_id: str) -> Optional[Dict[str, Any]]:
        return self.fetch_data()["dataflows"].get(str(dataflow_id))

    def get_card(self, card_id: str) -> Optional[Dict[str, Any]]:
        return self.fetch_data()["cards"].get(str(card_id))

    def list_dataflows(self) -> List[Dict[str, Any]]:
        return list(self.fetch_data()["dataflows"].values())

    def list_cards(self) -> List[Dict[str, Any]]:
        return list(self.fetch_data()["cards"].values())

    def list_datasets(self) -> List[Dict[str, Any]]:
        return list(self.fetch_data()["datasets"].values())


def write_export(source: EntitySource, output_file: Union[str, Path]) -> Dict[str, int]:
    """Dump a source's listings into a file JsonFileSource can read back"""
    data = {
        "datasets": source.list_datasets(),
        "dataflows": source.list_dataflows(),
        "cards": source.list_cards(),
    }
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, 'w') as f:
        json.dump(data, f, indent=2, default=str)
    return {section: len(records) for section, records in data.items()}
