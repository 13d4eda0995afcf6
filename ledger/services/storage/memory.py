"""
In-Memory Storage Implementation

Keeps every collection in process memory with a secondary index map per
indexed field (value -> set of ids). Nothing outlives the process.

Used for tests and throwaway sessions; behaves like the SQLite backend
for every lookup the store performs.
"""

import copy
import itertools
from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Optional

from ledger.models.events import Collection
from ledger.services.storage.interface import (
    COLLECTION_SPECS,
    CollectionSpec,
    CollectionStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    PersistenceError,
    Range,
)


def _in_range(value: Any, bounds: Range) -> bool:
    low, high = bounds
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


class InMemoryCollection(CollectionStorageInterface):
    """One collection held in a dict, indexed by field value."""
    
    def __init__(self, spec: CollectionSpec):
        super().__init__(spec)
        self._records: dict[str, dict[str, Any]] = {}
        self._positions: dict[str, int] = {}
        self._sequence = itertools.count()
        self._indices: dict[str, dict[Any, set[str]]] = {
            field: defaultdict(set) for field in spec.indexed_fields
        }
        self.is_open = False
    
    def _require_open(self) -> None:
        if not self.is_open:
            raise PersistenceError(f"Storage is not open: {self.spec.name.value}")
    
    def _index(self, record_id: str, record: dict[str, Any]) -> None:
        for field, index in self._indices.items():
            index[record.get(field)].add(record_id)
    
    def _unindex(self, record_id: str, record: dict[str, Any]) -> None:
        for field, index in self._indices.items():
            value = record.get(field)
            ids = index.get(value)
            if ids is not None:
                ids.discard(record_id)
                if not ids:
                    del index[value]
    
    def _insert(self, record: dict[str, Any]) -> None:
        record_id = record[self.spec.key_field]
        if record_id in self._records:
            raise DuplicateError(f"Duplicate id in {self.spec.name.value}: {record_id}")
        stored = copy.deepcopy(record)
        self._records[record_id] = stored
        self._positions[record_id] = next(self._sequence)
        self._index(record_id, stored)
    
    async def add(self, record: dict[str, Any]) -> None:
        self._require_open()
        self._insert(record)
    
    async def add_many(self, records: list[dict[str, Any]]) -> int:
        self._require_open()
        keys = [record[self.spec.key_field] for record in records]
        if len(set(keys)) != len(keys) or any(key in self._records for key in keys):
            raise DuplicateError(f"Duplicate id in bulk insert into {self.spec.name.value}")
        for record in records:
            self._insert(record)
        return len(records)
    
    async def get(self, record_id: str) -> Optional[dict[str, Any]]:
        self._require_open()
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None
    
    async def put(self, record: dict[str, Any]) -> bool:
        self._require_open()
        record_id = record[self.spec.key_field]
        existing = self._records.get(record_id)
        if existing is None:
            return False
        self._unindex(record_id, existing)
        stored = copy.deepcopy(record)
        self._records[record_id] = stored
        self._index(record_id, stored)
        return True
    
    async def remove(self, record_id: str) -> bool:
        self._require_open()
        existing = self._records.pop(record_id, None)
        if existing is None:
            return False
        self._positions.pop(record_id, None)
        self._unindex(record_id, existing)
        return True
    
    def _matching_ids(
        self,
        equals: Mapping[str, Any],
        ranges: Mapping[str, Range],
    ) -> set[str]:
        candidates: Optional[set[str]] = None
        
        for field, value in equals.items():
            ids = set(self._indices[field].get(value, ()))
            candidates = ids if candidates is None else candidates & ids
        
        for field, bounds in ranges.items():
            ids = set()
            for value, value_ids in self._indices[field].items():
                if _in_range(value, bounds):
                    ids |= value_ids
            candidates = ids if candidates is None else candidates & ids
        
        if candidates is None:
            return set(self._records)
        return candidates
    
    async def query(
        self,
        equals: Optional[Mapping[str, Any]] = None,
        ranges: Optional[Mapping[str, Range]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        self._require_open()
        equals = equals or {}
        ranges = ranges or {}
        self._check_indexed([*equals, *ranges, *([order_by] if order_by else [])])
        
        matched = sorted(self._matching_ids(equals, ranges), key=self._positions.__getitem__)
        records = [copy.deepcopy(self._records[record_id]) for record_id in matched]
        
        if order_by:
            records.sort(
                key=lambda r: (r.get(order_by) is None, r.get(order_by)),
                reverse=descending,
            )
        return records
    
    async def all(self) -> list[dict[str, Any]]:
        self._require_open()
        return [copy.deepcopy(record) for record in self._records.values()]
    
    async def count(self) -> int:
        self._require_open()
        return len(self._records)
    
    async def clear(self) -> int:
        self._require_open()
        removed = len(self._records)
        self._records.clear()
        self._positions.clear()
        for index in self._indices.values():
            index.clear()
        return removed


class InMemoryStorage(LedgerStorageInterface):
    """In-process implementation of ledger storage."""
    
    def __init__(self):
        self._collections = {
            name: InMemoryCollection(spec) for name, spec in COLLECTION_SPECS.items()
        }
    
    async def open(self) -> None:
        for collection in self._collections.values():
            collection.is_open = True
    
    async def close(self) -> None:
        for collection in self._collections.values():
            collection.is_open = False
    
    def collection(self, name: Collection) -> InMemoryCollection:
        return self._collections[name]
