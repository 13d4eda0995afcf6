"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLite is the durable backend; the in-memory backend serves tests.
"""

from ledger.services.storage.interface import (
    COLLECTION_SPECS,
    CollectionSpec,
    CollectionStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    PersistenceError,
    StorageError,
)
from ledger.services.storage.memory import InMemoryCollection, InMemoryStorage
from ledger.services.storage.sqlite import SQLiteCollection, SQLiteStorage

__all__ = [
    # Interfaces
    "COLLECTION_SPECS",
    "CollectionSpec",
    "CollectionStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    # Implementations
    "InMemoryCollection",
    "InMemoryStorage",
    "SQLiteCollection",
    "SQLiteStorage",
]
