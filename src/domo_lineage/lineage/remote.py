"""Merge the vendor lineage endpoint's nested response into a LineageGraph"""
import logging
from typing import Any, Dict, List, Optional, Set

from ..errors import MalformedResponseError, NoLineageDataError
from ..models import (
    EntityKind,
    LineageGraph,
    LineageNode,
    ViaKind,
    make_entity_key,
)

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_MAX_DEPTH = 50

RELATION_FIELDS = {"upstream": "parents", "downstream": "children"}


def via_between(a: EntityKind, b: EntityKind) -> ViaKind:
    """Edges touching a dataflow run through it; anything else is direct"""
    if EntityKind.DATAFLOW in (a, b):
        return ViaKind.DATAFLOW
    return ViaKind.DIRECT


class RemoteLineageMerger:
    """Walks parents/children of one response, collapsing repeated entities"""

    def __init__(self, response: Dict[str, Any], max_depth: int = DEFAULT_REMOTE_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.response = response
        self.max_depth = max_depth
        self.graph: Optional[LineageGraph] = None
        self._expanded: Set[str] = set()
        self._truncated = False
        self._skipped = False

    def merge(self, root_id: str, root_kind: EntityKind) -> LineageGraph:
        root_kind = EntityKind(root_kind)
        root_key = make_entity_key(root_kind, root_id)
        entry = self.response.get(root_key)
        if entry is None:
            raise NoLineageDataError(root_kind, str(root_id))
        if not isinstance(entry, dict):
            raise MalformedResponseError(f"Lineage entry {root_key} must be an object")

        self.graph = LineageGraph(root_key)
        self.graph.add_node(LineageNode(
            id=str(root_id),
            kind=root_kind,
            name=entry.get("name") or None,
            resolved=bool(entry.get("complete", True)),
        ))

        for direction in ("upstream", "downstream"):
            self._walk(root_key, entry, direction, 0)

        root_complete = bool(entry.get("complete", True))
        self.graph.complete = root_complete and not self._truncated and not self._skipped
        self.graph.reported_counts = {
            field: _parse_counts(entry.get(field))
            for field in ("ancestorCounts", "descendantCounts")
            if isinstance(entry.get(field), dict)
        }

        logger.info("Merged remote lineage for %s: %d nodes, %d edges, complete=%s",
                    root_key, len(self.graph.nodes), len(self.graph.edges), self.graph.complete)
        return self.graph

    def _relations(self, key: str, entity: Dict[str, Any], direction: str) -> List[Any]:
        """Nested relations, falling back to the entity's own top-level entry"""
        field = RELATION_FIELDS[direction]
        related = entity.get(field)
        if related is None:
            top_level = self.response.get(key)
            if isinstance(top_level, dict) and top_level is not entity:
                related = top_level.get(field)
        if related is None:
            return []
        if not isinstance(related, list):
            raise MalformedResponseError(f"'{field}' of {key} must be a list")
        return related

    def _walk(self, key: str, entity: Dict[str, Any], direction: str, depth: int) -> None:
        marker = f"{direction}:{key}"
        if marker in self._expanded:
            return

        related = self._relations(key, entity, direction)
        if depth >= self.max_depth:
            if related:
                logger.debug("Truncating remote lineage at %s (depth %d)", key, depth)
                self._truncated = True
            return
        self._expanded.add(marker)

        node = self.graph.nodes[key]
        for child in related:
            child_node = self._add_entity(child)
            if child_node is None:
                continue
            if child_node.key == key:
                logger.debug("Ignoring self-loop on %s", key)
                continue

            via = via_between(node.kind, child_node.kind)
            if direction == "upstream":
                self.graph.add_edge(child_node.key, key, via)
            else:
                self.graph.add_edge(key, child_node.key, via)

            self._walk(child_node.key, child, direction, depth + 1)

    def _add_entity(self, entity: Any) -> Optional[LineageNode]:
        if not isinstance(entity, dict):
            raise MalformedResponseError(f"Lineage entity must be an object, got {type(entity).__name__}")

        entity_id = entity.get("id")
        try:
            kind = EntityKind.from_api(entity.get("type"))
        except ValueError:
            logger.warning("Skipping lineage entity %s of unknown type %r", entity_id, entity.get("type"))
            self._skipped = True
            return None
        if entity_id is None or str(entity_id) == "":
            logger.warning("Skipping %s lineage entity without an id", kind.label)
            self._skipped = True
            return None

        key = make_entity_key(kind, entity_id)
        top_level = self.response.get(key)
        name = entity.get("name")
        if not name and isinstance(top_level, dict):
            name = top_level.get("name")

        return self.graph.add_node(LineageNode(
            id=str(entity_id),
            kind=kind,
            name=name or None,
            resolved=bool(entity.get("complete", True)),
        ))


def _parse_counts(raw: Dict[str, Any]) -> Dict[str, int]:
    counts = {}
    for kind, count in raw.items():
        try:
            counts[EntityKind.from_api(kind).value] = int(count)
        except (TypeError, ValueError):
            logger.debug("Ignoring unusable lineage count %r=%r", kind, count)
    return counts


def merge_remote_lineage(raw: Any, root_id: str, root_kind: EntityKind,
                         max_depth: int = DEFAULT_REMOTE_MAX_DEPTH) -> LineageGraph:
    """Convert a raw lineage response into a LineageGraph.

    Raises:
        NoLineageDataError: The response has no entry for the root
        MalformedResponseError: The response is structurally invalid
    """
    if raw is None:
        raise NoLineageDataError(EntityKind(root_kind), str(root_id))
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"Lineage response must be an object, got {type(raw).__name__}")
    return RemoteLineageMerger(raw, max_depth=max_depth).merge(root_id, root_kind)
