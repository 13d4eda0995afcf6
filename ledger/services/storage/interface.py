"""
Abstract Storage Interface

The store talks to durable storage only through these interfaces, so the
backend can be swapped (SQLite on disk, in-memory for tests) without
touching validation, timestamps or aggregation.

The interface is intentionally small - this is not an ORM. Records are
JSON-ready dicts keyed by their serialized field names; the backend knows
which of those fields are indexed, and nothing else about the entities.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from ledger.models.events import Collection


@dataclass(frozen=True)
class CollectionSpec:
    """Primary key and secondary indices of one collection."""
    
    name: Collection
    indexed_fields: tuple[str, ...]
    key_field: str = "id"


# Secondary indices maintained per collection. Range and equality lookups
# are only allowed on these fields.
COLLECTION_SPECS: dict[Collection, CollectionSpec] = {
    Collection.EXPENSES: CollectionSpec(
        name=Collection.EXPENSES,
        indexed_fields=("date", "category", "paymentMethod", "account", "createdAt"),
    ),
    Collection.CATEGORIES: CollectionSpec(
        name=Collection.CATEGORIES,
        indexed_fields=("name", "isDefault"),
    ),
    Collection.BUDGETS: CollectionSpec(
        name=Collection.BUDGETS,
        indexed_fields=("category", "period", "isActive"),
    ),
    Collection.SETTINGS: CollectionSpec(
        name=Collection.SETTINGS,
        indexed_fields=(),
    ),
}

# Inclusive (low, high) bounds; None leaves that side open.
Range = tuple[Optional[Any], Optional[Any]]


class CollectionStorageInterface(ABC):
    """
    Abstract interface for one keyed collection.
    
    Any storage implementation must implement these methods.
    """
    
    def __init__(self, spec: CollectionSpec):
        self.spec = spec
    
    def _check_indexed(self, fields: Iterable[str]) -> None:
        for field in fields:
            if field not in self.spec.indexed_fields:
                raise ValueError(
                    f"{field!r} is not an indexed field of {self.spec.name.value}"
                )
    
    @abstractmethod
    async def add(self, record: dict[str, Any]) -> None:
        """
        Insert a new record.
        
        Raises:
            DuplicateError: If a record with the same key exists
            PersistenceError: If the write fails
        """
        pass
    
    @abstractmethod
    async def add_many(self, records: list[dict[str, Any]]) -> int:
        """
        Insert many records, keeping their keys.
        
        Returns:
            Number of records written
            
        Raises:
            DuplicateError: If any key already exists
            PersistenceError: If the write fails
        """
        pass
    
    @abstractmethod
    async def get(self, record_id: str) -> Optional[dict[str, Any]]:
        """Return the record with this key, or None."""
        pass
    
    @abstractmethod
    async def put(self, record: dict[str, Any]) -> bool:
        """
        Replace an existing record.
        
        Returns:
            True if replaced, False if no record has this key
        """
        pass
    
    @abstractmethod
    async def remove(self, record_id: str) -> bool:
        """
        Delete a record by key.
        
        Returns:
            True if deleted, False if it did not exist
        """
        pass
    
    @abstractmethod
    async def query(
        self,
        equals: Optional[Mapping[str, Any]] = None,
        ranges: Optional[Mapping[str, Range]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Index-scoped lookup.
        
        Args:
            equals: Indexed field -> required value
            ranges: Indexed field -> inclusive (low, high) bounds
            order_by: Indexed field to sort by; insertion order if None
            descending: Reverse the sort
            
        Returns:
            Matching records; order is stable for a given call
            
        Raises:
            ValueError: If a field is not indexed
        """
        pass
    
    @abstractmethod
    async def all(self) -> list[dict[str, Any]]:
        """Every record, in insertion order."""
        pass
    
    @abstractmethod
    async def count(self) -> int:
        """Number of records."""
        pass
    
    @abstractmethod
    async def clear(self) -> int:
        """
        Delete every record.
        
        Returns:
            Number of records removed
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the whole storage backend.
    
    Owns one ``CollectionStorageInterface`` per collection.
    """
    
    @abstractmethod
    async def open(self) -> None:
        """
        Connect and create collections/indices if missing.
        
        Raises:
            ConnectionError: If the backend cannot be opened
        """
        pass
    
    @abstractmethod
    async def close(self) -> None:
        """Flush and release the backend."""
        pass
    
    @abstractmethod
    def collection(self, name: Collection) -> CollectionStorageInterface:
        """Get the storage for one collection."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class PersistenceError(StorageError):
    """Underlying storage I/O failed. Never retried by the store."""
    pass


class ConnectionError(PersistenceError):
    """Could not open the storage backend."""
    pass
