"""Error taxonomy for lineage operations"""
from typing import Optional


class LineageError(Exception):
    """Base class for all lineage errors"""


class NotFoundError(LineageError):
    """Raised when an entity does not exist in any backing store"""

    def __init__(self, kind, entity_id: str, message: Optional[str] = None):
        self.kind = kind
        self.entity_id = entity_id
        label = getattr(kind, "label", str(kind))
        super().__init__(message or f"No such {label}: {entity_id}")


class UpstreamUnavailableError(LineageError):
    """Raised when a fetch fails due to network, auth or configuration issues"""


class NoLineageDataError(LineageError):
    """Raised when a remote lineage response lacks the requested entity"""

    def __init__(self, kind, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        label = getattr(kind, "label", str(kind))
        super().__init__(f"No lineage data found for {label} {entity_id}")


class MalformedResponseError(LineageError):
    """Raised when remote lineage data is structurally invalid"""
