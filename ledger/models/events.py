"""
Change Event Models for Ledger

The store publishes one coarse-grained event per successful mutation.
Observers get told *which collection* changed and re-query on their own;
events never carry record contents.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Collection(str, Enum):
    """The four persisted collections."""
    EXPENSES = "expenses"
    CATEGORIES = "categories"
    BUDGETS = "budgets"
    SETTINGS = "settings"


class ChangeKind(str, Enum):
    """What happened to the collection."""
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"
    CLEARED = "cleared"
    REPLACED = "replaced"
    SEEDED = "seeded"


class ChangeEvent(BaseModel):
    """A single "collection changed" notification."""
    
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        ...,
        description="Store clock reading when the change was applied"
    )
    collection: Collection
    kind: ChangeKind
    record_id: Optional[str] = Field(
        default=None,
        description="Affected record for single-record changes"
    )
    record_count: Optional[int] = Field(
        default=None,
        description="Number of records written for bulk changes"
    )
    
    def to_log_dict(self) -> dict[str, Any]:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "collection": self.collection.value,
            "kind": self.kind.value,
            "record_id": self.record_id,
            "record_count": self.record_count,
        }
