"""Services package."""

from ledger.services.storage import (
    ConnectionError,
    DuplicateError,
    InMemoryStorage,
    LedgerStorageInterface,
    NotFoundError,
    PersistenceError,
    SQLiteStorage,
    StorageError,
)

__all__ = [
    "ConnectionError",
    "DuplicateError",
    "InMemoryStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "PersistenceError",
    "SQLiteStorage",
    "StorageError",
]
