"""Reconciliation exceptions."""

from typing import Any, Optional


class ReconcileError(Exception):
    """Base exception for import/export."""
    pass


class ParseError(ReconcileError):
    """
    The import document is malformed.
    
    Always raised before the store is touched.
    """
    
    def __init__(self, message: str, details: Optional[list[Any]] = None):
        super().__init__(message)
        self.details = details or []


class ConfirmationRequiredError(ReconcileError):
    """A destructive import was requested without ``confirm=True``."""
    pass


class ReconciliationAbortedError(ReconcileError):
    """
    FATAL: an import failed after the store was already being cleared.
    
    Data that existed before the import may be gone. The import is not
    retried.
    """
    
    def __init__(self, source: str, phase: str, cause: BaseException):
        super().__init__(
            f"{source} import aborted during {phase}; "
            f"existing data may be unrecoverable: {cause}"
        )
        self.source = source
        self.phase = phase
        self.cause = cause
