from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .errors import MalformedResponseError


class EntityKind(str, Enum):
    """Entity types known to the lineage API"""
    DATASET = "DATA_SOURCE"
    DATAFLOW = "DATAFLOW"
    CARD = "CARD"
    ALERT = "ALERT"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_api(cls, value: str) -> "EntityKind":
        """Parse a vendor type string or a friendly alias"""
        normalized = str(value).strip().upper()
        kind = _ALIASES.get(normalized)
        if kind is None:
            raise ValueError(f"Unknown entity type: {value!r}")
        return kind


_LABELS = {
    EntityKind.DATASET: "dataset",
    EntityKind.DATAFLOW: "dataflow",
    EntityKind.CARD: "card",
    EntityKind.ALERT: "alert",
}

_ALIASES = {
    "DATA_SOURCE": EntityKind.DATASET,
    "DATASOURCE": EntityKind.DATASET,
    "DATASET": EntityKind.DATASET,
    "DATAFLOW": EntityKind.DATAFLOW,
    "CARD": EntityKind.CARD,
    "ALERT": EntityKind.ALERT,
}

# Longest prefix first so DATA_SOURCE never loses to a shorter kind
_KEY_PREFIXES = sorted(EntityKind, key=lambda k: len(k.value), reverse=True)


UPSTREAM = "upstream"
DOWNSTREAM = "downstream"


class ViaKind(str, Enum):
    """How an edge connects its endpoints"""
    DATAFLOW = "DATAFLOW"
    DIRECT = "DIRECT"


def make_entity_key(kind: EntityKind, entity_id: Any) -> str:
    """Build the "<KIND><id>" key used by the lineage API and the graph"""
    entity_id = str(entity_id)
    if not entity_id:
        raise ValueError("Entity id must not be empty")
    return f"{EntityKind(kind).value}{entity_id}"


def parse_entity_key(key: str) -> Tuple[EntityKind, str]:
    """Split an entity key back into kind and id"""
    for kind in _KEY_PREFIXES:
        if key.startswith(kind.value) and len(key) > len(kind.value):
            return kind, key[len(kind.value):]
    raise ValueError(f"Not an entity key: {key!r}")


@dataclass
class LineageNode:
    """A dataset, dataflow, card or alert in a lineage graph

    Only resolved nodes carry a ``name``. A name reported for an unresolved
    node (a port or binding label) is kept as ``hint`` until the node's own
    record is read.
    """
    id: str
    kind: EntityKind
    name: Optional[str] = None
    resolved: bool = False
    hint: Optional[str] = None

    def __post_init__(self):
        if not self.resolved and self.name:
            self.hint = self.hint or self.name
            self.name = None

    @property
    def key(self) -> str:
        return make_entity_key(self.kind, self.id)

    @property
    def display_name(self) -> str:
        return self.name if self.resolved and self.name else "unresolved"

    def mark_resolved(self, name: Optional[str]) -> None:
        self.resolved = True
        self.name = name or self.name or self.hint

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'key': self.key,
            'id': self.id,
            'kind': self.kind.value,
            'name': self.name,
            'resolved': self.resolved,
        }
        if self.hint and not self.resolved:
            data['hint'] = self.hint
        return data


@dataclass(frozen=True)
class LineageEdge:
    """Directed edge: from_key produces input consumed by to_key"""
    from_key: str
    to_key: str
    via: ViaKind = ViaKind.DATAFLOW

    def to_dict(self) -> Dict[str, str]:
        return {
            'from': self.from_key,
            'to': self.to_key,
            'via': self.via.value,
        }


class LineageGraph:
    """Nodes keyed by entity key plus edges in discovery order"""

    def __init__(self, root_key: Optional[str] = None,
                 directions: Iterable[str] = (UPSTREAM, DOWNSTREAM)):
        self.root_key = root_key
        # Directions followed from the root; closures in other directions are empty
        self.directions: Set[str] = set(directions)
        self.nodes: Dict[str, LineageNode] = {}
        self.edges: List[LineageEdge] = []
        self.complete = True
        self.reported_counts: Dict[str, Dict[str, int]] = {}
        self._edge_set: Set[LineageEdge] = set()
        self._relationships: Dict[str, Dict[str, List[LineageEdge]]] = {}

    @property
    def root(self) -> LineageNode:
        return self.nodes[self.root_key]

    def __contains__(self, key: str) -> bool:
        return key in self.nodes

    def add_node(self, node: LineageNode) -> LineageNode:
        """Add a node, or return the one already stored under its key"""
        existing = self.nodes.get(node.key)
        if existing is not None:
            if node.resolved and not existing.resolved:
                existing.mark_resolved(node.name)
            elif node.name and not existing.name:
                existing.name = node.name
            if node.hint and not existing.hint:
                existing.hint = node.hint
            return existing
        self.nodes[node.key] = node
        self._relationships[node.key] = {"upstream": [], "downstream": []}
        return node

    def add_edge(self, from_key: str, to_key: str, via: ViaKind = ViaKind.DATAFLOW) -> bool:
        """Add an edge; self-loops and duplicates are ignored"""
        if from_key not in self.nodes or to_key not in self.nodes:
            raise KeyError(f"Edge endpoints must exist in the graph: {from_key} -> {to_key}")
        if from_key == to_key:
            return False
        edge = LineageEdge(from_key, to_key, ViaKind(via))
        if edge in self._edge_set:
            return False
        self._edge_set.add(edge)
        self.edges.append(edge)
        self._relationships[from_key]["downstream"].append(edge)
        self._relationships[to_key]["upstream"].append(edge)
        return True

    def upstream_of(self, key: str) -> List[LineageEdge]:
        """Edges pointing into a node"""
        return self._relationships.get(key, {}).get("upstream", [])

    def downstream_of(self, key: str) -> List[LineageEdge]:
        """Edges leaving a node"""
        return self._relationships.get(key, {}).get("downstream", [])

    def get_lineage_graph(self) -> Dict[str, Any]:
        """Plain-dict export in storage order"""
        return {
            "root": self.root_key,
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "edges": [edge.to_dict() for edge in self.edges],
            "complete": self.complete,
        }


@dataclass
class TraversalResult:
    """Transitive closure of a graph around its root"""
    ancestors: Set[str] = field(default_factory=set)
    descendants: Set[str] = field(default_factory=set)
    ancestor_counts: Dict[EntityKind, int] = field(default_factory=dict)
    descendant_counts: Dict[EntityKind, int] = field(default_factory=dict)
    complete: bool = True
    unresolved: Set[str] = field(default_factory=set)
    unreachable: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ancestors': sorted(self.ancestors),
            'descendants': sorted(self.descendants),
            'ancestorCounts': _counts_to_dict(self.ancestor_counts),
            'descendantCounts': _counts_to_dict(self.descendant_counts),
            'complete': self.complete,
            'unresolved': sorted(self.unresolved),
            'unreachable': sorted(self.unreachable),
        }


def _counts_to_dict(counts: Dict[EntityKind, int]) -> Dict[str, int]:
    return {kind.value: counts[kind] for kind in sorted(counts, key=lambda k: k.value)}


@dataclass(frozen=True)
class NeighborRef:
    """A neighbor reported by an entity record"""
    kind: EntityKind
    id: str
    via: ViaKind = ViaKind.DATAFLOW
    name: Optional[str] = None

    @property
    def key(self) -> str:
        return make_entity_key(self.kind, self.id)


@dataclass
class EntityRecord:
    """Uniform shape for a dataset, dataflow or card and its neighbors"""
    id: str
    kind: EntityKind
    name: Optional[str]
    upstream: List[NeighborRef] = field(default_factory=list)
    downstream: List[NeighborRef] = field(default_factory=list)

    @property
    def key(self) -> str:
        return make_entity_key(self.kind, self.id)

    def to_node(self) -> LineageNode:
        return LineageNode(id=self.id, kind=self.kind, name=self.name, resolved=True)


# Dataflow payload variants

@dataclass
class DataflowPort:
    """An input or output dataset of a dataflow"""
    dataset_id: str
    name: Optional[str] = None


@dataclass
class RawDataflowV2:
    """Dataflow as returned by the v2 dataprocessing endpoint"""
    id: str
    name: Optional[str]
    inputs: List[DataflowPort]
    outputs: List[DataflowPort]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RawDataflowV2":
        return cls(
            id=str(raw.get("id") or ""),
            name=raw.get("name") or None,
            inputs=_ports(raw.get("inputs"), "name"),
            outputs=_ports(raw.get("outputs"), "name"),
        )


@dataclass
class RawDataflowV1:
    """Dataflow as returned by the v1 dataprocessing endpoint"""
    id: str
    name: Optional[str]
    inputs: List[DataflowPort]
    outputs: List[DataflowPort]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RawDataflowV1":
        inputs = _ports(raw.get("inputs"), "dataSourceName")
        outputs = _ports(raw.get("outputs"), "dataSourceName")
        actions = raw.get("actions") or []
        if not isinstance(actions, list):
            raise MalformedResponseError("Dataflow actions must be a list")
        # Older v1 payloads only describe their datasets through actions
        if not inputs:
            inputs = _action_ports(actions, "LoadFromVault")
        if not outputs:
            outputs = _action_ports(actions, "PublishToVault")
        return cls(
            id=str(raw.get("id") or ""),
            name=raw.get("name") or None,
            inputs=inputs,
            outputs=outputs,
        )


@dataclass
class MergedDataflow:
    """Normalized dataflow used by the entity store adapter"""
    id: str
    name: Optional[str]
    inputs: List[DataflowPort]
    outputs: List[DataflowPort]
    sources: Tuple[str, ...] = ()

    @classmethod
    def merge(cls, v2: Optional[RawDataflowV2], v1: Optional[RawDataflowV1]) -> "MergedDataflow":
        """v2 takes precedence; v1 fills fields v2 left empty"""
        if v2 is None and v1 is None:
            raise MalformedResponseError("Dataflow envelope holds neither v1 nor v2 data")
        primary = v2 or v1
        secondary = v1 if v2 is not None else None
        sources = tuple(label for label, part in (("v2", v2), ("v1", v1)) if part is not None)
        return cls(
            id=primary.id or (secondary.id if secondary else ""),
            name=primary.name or (secondary.name if secondary else None),
            inputs=primary.inputs or (secondary.inputs if secondary else []),
            outputs=primary.outputs or (secondary.outputs if secondary else []),
            sources=sources,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'inputs': [{'dataSourceId': p.dataset_id, 'name': p.name} for p in self.inputs],
            'outputs': [{'dataSourceId': p.dataset_id, 'name': p.name} for p in self.outputs],
            'sources': list(self.sources),
        }


def parse_dataflow_record(raw: Any) -> MergedDataflow:
    """Sniff a raw dataflow payload once and normalize it"""
    if isinstance(raw, MergedDataflow):
        return raw
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"Dataflow record must be an object, got {type(raw).__name__}")

    if _is_envelope(raw):
        v2 = raw.get("v2")
        v1 = raw.get("v1")
        return MergedDataflow.merge(
            RawDataflowV2.from_dict(v2) if isinstance(v2, dict) else None,
            RawDataflowV1.from_dict(v1) if isinstance(v1, dict) else None,
        )

    if _looks_like_v1(raw):
        return MergedDataflow.merge(None, RawDataflowV1.from_dict(raw))
    return MergedDataflow.merge(RawDataflowV2.from_dict(raw), None)


def _is_envelope(raw: Dict[str, Any]) -> bool:
    return "id" not in raw and bool(raw.keys() & {"v1", "v2"})


def _looks_like_v1(raw: Dict[str, Any]) -> bool:
    if "actions" in raw:
        return True
    for port in _iter_port_dicts(raw.get("inputs")) + _iter_port_dicts(raw.get("outputs")):
        if "dataSourceName" in port and "name" not in port:
            return True
    return False


def _iter_port_dicts(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, list):
        return [p for p in value if isinstance(p, dict)]
    return []


def _ports(value: Any, name_field: str) -> List[DataflowPort]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedResponseError("Dataflow inputs/outputs must be a list")
    ports: List[DataflowPort] = []
    seen: Set[str] = set()
    for entry in value:
        if not isinstance(entry, dict):
            raise MalformedResponseError("Dataflow port must be an object")
        dataset_id = str(entry.get("dataSourceId") or "")
        if not dataset_id or dataset_id in seen:
            continue
        seen.add(dataset_id)
        name = entry.get(name_field) or entry.get("name") or entry.get("dataSourceName")
        ports.append(DataflowPort(dataset_id, name or None))
    return ports


def _action_ports(actions: Iterable[Any], action_type: str) -> List[DataflowPort]:
    ports: List[DataflowPort] = []
    seen: Set[str] = set()
    for action in actions:
        if not isinstance(action, dict) or action.get("type") != action_type:
            continue
        source = action.get("dataSource") if isinstance(action.get("dataSource"), dict) else {}
        dataset_id = str(action.get("dataSourceId") or source.get("guid") or "")
        if not dataset_id or dataset_id in seen:
            continue
        seen.add(dataset_id)
        ports.append(DataflowPort(dataset_id, source.get("name") or action.get("name")))
    return ports
