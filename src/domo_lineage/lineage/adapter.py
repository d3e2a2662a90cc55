"""Entity store adapter

Normalizes raw dataset, dataflow and card records, read from the local cache
or fetched live, into :class:`EntityRecord` objects carrying their immediate
upstream and downstream neighbors.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional

import requests

from ..base import EntitySource, KeyValueStore
from ..errors import MalformedResponseError, NotFoundError, UpstreamUnavailableError
from ..models import EntityKind, EntityRecord, NeighborRef, ViaKind, parse_dataflow_record

logger = logging.getLogger(__name__)


def record_cache_key(kind: EntityKind, entity_id: str) -> str:
    return f"{kind.label}:{entity_id}"


def card_dataset_ids(raw: Dict[str, Any]) -> List[str]:
    """Dataset ids a card is bound to, in record order"""
    ids: List[str] = []
    for entry in raw.get("datasets") or []:
        ids.append(str(entry.get("id") if isinstance(entry, dict) else entry))
    for entry in raw.get("datasources") or []:
        if isinstance(entry, dict) and entry.get("dataSourceId"):
            ids.append(str(entry["dataSourceId"]))
    definition = raw.get("definition")
    if isinstance(definition, dict) and definition.get("dataSetId"):
        ids.append(str(definition["dataSetId"]))
    return list(dict.fromkeys(i for i in ids if i and i != "None"))


def card_title(raw: Dict[str, Any]) -> Optional[str]:
    return raw.get("title") or raw.get("cardTitle") or raw.get("name") or None


class EntityStoreAdapter:
    """Resolves entities from the cache, falling back to a live source"""

    def __init__(self, source: Optional[EntitySource] = None, cache: Optional[KeyValueStore] = None,
                 cache_ttl: Optional[float] = None):
        self.source = source
        self.cache = cache
        self.cache_ttl = cache_ttl
        self._index = None
        self._index_lock = threading.Lock()

    async def resolve_node(self, entity_id: str, kind: EntityKind) -> EntityRecord:
        """Fetch one entity and its immediate neighbors"""
        kind = EntityKind(kind)
        entity_id = str(entity_id)
        if kind is EntityKind.ALERT:
            raise NotFoundError(kind, entity_id, f"Alerts have no local record source: {entity_id}")
        return await asyncio.to_thread(self._resolve, entity_id, kind)

    def _resolve(self, entity_id: str, kind: EntityKind) -> EntityRecord:
        raw = self._load(kind, entity_id)
        if not isinstance(raw, dict):
            raise MalformedResponseError(f"{kind.label} {entity_id} record must be an object")

        if kind is EntityKind.DATAFLOW:
            return self._dataflow_record(entity_id, raw)
        if kind is EntityKind.CARD:
            return self._card_record(entity_id, raw)
        return self._dataset_record(entity_id, raw)

    def _load(self, kind: EntityKind, entity_id: str) -> Any:
        """Cache first, then the live source with write-through"""
        key = record_cache_key(kind, entity_id)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        if self.source is None:
            raise NotFoundError(kind, entity_id)

        fetch = {
            EntityKind.DATASET: self.source.get_dataset,
            EntityKind.DATAFLOW: self.source.get_dataflow,
            EntityKind.CARD: self.source.get_card,
        }[kind]
        try:
            raw = fetch(entity_id)
        except UpstreamUnavailableError:
            raise
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"Failed to fetch {kind.label} {entity_id}: {e}") from e

        if raw is None:
            raise NotFoundError(kind, entity_id)

        if self.cache is not None:
            self.cache.set(key, raw, self.cache_ttl)
        return raw

    def _load_listing(self, name: str, fetch) -> List[Dict[str, Any]]:
        key = f"{name}-list"
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        if self.source is None:
            return []
        try:
            records = fetch()
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"Failed to list {name}s: {e}") from e
        if self.cache is not None:
            self.cache.set(key, records, self.cache_ttl)
        return records

    def _reverse_index(self) -> Dict[str, Dict[str, List[NeighborRef]]]:
        """Dataset id to producing dataflows, consuming dataflows and cards"""
        with self._index_lock:
            if self._index is not None:
                return self._index

            producers = defaultdict(list)
            consumers = defaultdict(list)
            cards = defaultdict(list)

            dataflows = self._load_listing("dataflow", self.source.list_dataflows if self.source else None)
            for raw in dataflows:
                try:
                    dataflow = parse_dataflow_record(raw)
                except MalformedResponseError as e:
                    logger.warning("Skipping malformed dataflow in listing: %s", e)
                    continue
                if not dataflow.id:
                    continue
                ref = NeighborRef(EntityKind.DATAFLOW, dataflow.id, ViaKind.DATAFLOW, dataflow.name)
                for port in dataflow.inputs:
                    consumers[port.dataset_id].append(ref)
                for port in dataflow.outputs:
                    producers[port.dataset_id].append(ref)

            for raw in self._load_listing("card", self.source.list_cards if self.source else None):
                if not isinstance(raw, dict) or raw.get("id") is None:
                    continue
                ref = NeighborRef(EntityKind.CARD, str(raw["id"]), ViaKind.DIRECT, card_title(raw))
                for dataset_id in card_dataset_ids(raw):
                    cards[dataset_id].append(ref)

            self._index = {"producers": producers, "consumers": consumers, "cards": cards}
            logger.debug("Indexed %d dataflows for dataset lookups", len(dataflows))
            return self._index

    def _dataset_record(self, entity_id: str, raw: Dict[str, Any]) -> EntityRecord:
        index = self._reverse_index()
        return EntityRecord(
            id=entity_id,
            kind=EntityKind.DATASET,
            name=raw.get("name") or None,
            upstream=_unique(index["producers"].get(entity_id, [])),
            downstream=_unique(index["consumers"].get(entity_id, []) + index["cards"].get(entity_id, [])),
        )

    def _dataflow_record(self, entity_id: str, raw: Dict[str, Any]) -> EntityRecord:
        dataflow = parse_dataflow_record(raw)
        return EntityRecord(
            id=entity_id,
            kind=EntityKind.DATAFLOW,
            name=dataflow.name,
            upstream=[NeighborRef(EntityKind.DATASET, p.dataset_id, ViaKind.DATAFLOW, p.name)
                      for p in dataflow.inputs],
            downstream=[NeighborRef(EntityKind.DATASET, p.dataset_id, ViaKind.DATAFLOW, p.name)
                        for p in dataflow.outputs],
        )

    def _card_record(self, entity_id: str, raw: Dict[str, Any]) -> EntityRecord:
        return EntityRecord(
            id=entity_id,
            kind=EntityKind.CARD,
            name=card_title(raw),
            upstream=[NeighborRef(EntityKind.DATASET, dataset_id, ViaKind.DIRECT)
                      for dataset_id in card_dataset_ids(raw)],
        )


def _unique(refs: List[NeighborRef]) -> List[NeighborRef]:
    seen = set()
    unique = []
    for ref in refs:
        if ref.key not in seen:
            seen.add(ref.key)
            unique.append(ref)
    return unique
