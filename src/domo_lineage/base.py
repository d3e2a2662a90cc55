from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class EntitySource(ABC):
    """Base interface for sources of raw dataset, dataflow and card records"""

    @abstractmethod
    def get_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        """Get a dataset record, or None when it does not exist"""
        pass

    @abstractmethod
    def get_dataflow(self, dataflow_id: str) -> Optional[Dict[str, Any]]:
        """Get a dataflow record, or None when it does not exist"""
        pass

    @abstractmethod
    def get_card(self, card_id: str) -> Optional[Dict[str, Any]]:
        """Get a card record, or None when it does not exist"""
        pass

    @abstractmethod
    def list_datasets(self) -> List[Dict[str, Any]]:
        """List every dataset record the source knows about"""
        pass

    @abstractmethod
    def list_dataflows(self) -> List[Dict[str, Any]]:
        """List every dataflow record the source knows about"""
        pass

    @abstractmethod
    def list_cards(self) -> List[Dict[str, Any]]:
        """List every card record the source knows about"""
        pass


class LineageSource(ABC):
    """Base interface for sources of raw vendor lineage responses"""

    @abstractmethod
    def get_lineage(self, kind: str, entity_id: str, traverse_up: bool,
                    traverse_down: bool, request_entities: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get the nested lineage response for an entity"""
        pass


class KeyValueStore(ABC):
    """Base interface for the local record cache"""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get a value, or None when missing or expired"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry"""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get entry counts and sizes"""
        pass
