"""
Error Taxonomy

Every exception the core raises, importable from one place.

- ValidationError            insert/update violates an invariant (non-fatal)
- NotFoundError              update/delete of an unknown id (non-fatal)
- ParseError                 malformed import document; store untouched
- PersistenceError           storage I/O failed; not retried
- ReconciliationAbortedError import failed after clearing began (FATAL)
"""

from ledger.reconcile.errors import (
    ConfirmationRequiredError,
    ParseError,
    ReconcileError,
    ReconciliationAbortedError,
)
from ledger.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    PersistenceError,
    StorageError,
)
from ledger.validation.validator import ValidationError

__all__ = [
    "ConfirmationRequiredError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "ParseError",
    "PersistenceError",
    "ReconcileError",
    "ReconciliationAbortedError",
    "StorageError",
    "ValidationError",
]
