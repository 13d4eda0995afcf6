"""
JSON Bundle Format

The lossless backup format: every record of every collection, with ids
and timestamps, plus the moment the bundle was exported.

    {
      "expenses":   [...],
      "budgets":    [...],
      "categories": [...],
      "settings":   {...},
      "exportDate": "2024-12-01T10:00:00+00:00"
    }

Records use the camelCase field names. Amounts are written as decimal
strings; plain JSON numbers are accepted on import.
"""

import json
from collections import Counter
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ledger.models.entities import Budget, Category, Expense, Settings
from ledger.reconcile.errors import ParseError
from ledger.store import LedgerSnapshot


COLLECTION_KEYS = ("expenses", "budgets", "categories")


class LedgerBundle(BaseModel):
    """A complete, self-describing copy of the store."""
    
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    
    expenses: list[Expense] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    settings: Optional[Settings] = Field(
        default=None,
        description="Absent settings leave the current singleton untouched on import"
    )
    export_date: Optional[datetime] = None
    
    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot, export_date: datetime) -> "LedgerBundle":
        return cls(
            expenses=snapshot.expenses,
            budgets=snapshot.budgets,
            categories=snapshot.categories,
            settings=snapshot.settings,
            export_date=export_date,
        )


def dump_bundle(bundle: LedgerBundle) -> str:
    """Serialize a bundle as indented JSON text."""
    return json.dumps(
        bundle.model_dump(mode="json", by_alias=True),
        indent=2,
        ensure_ascii=False,
    )


def _check_unique_ids(bundle: LedgerBundle) -> None:
    for key in COLLECTION_KEYS:
        counts = Counter(record.id for record in getattr(bundle, key))
        duplicates = sorted(record_id for record_id, count in counts.items() if count > 1)
        if duplicates:
            raise ParseError(f"Duplicate ids in {key}: {', '.join(duplicates)}")


def parse_bundle(data: Union[str, bytes]) -> LedgerBundle:
    """
    Parse and check a JSON bundle without touching the store.
    
    Missing or null collection keys are read as empty collections.
    
    Raises:
        ParseError: If the text is not JSON, not an object, has records
                    that cannot be read as entities, or repeats an id
    """
    try:
        document = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Bundle is not valid JSON: {e}")
    
    if not isinstance(document, dict):
        raise ParseError(
            f"Bundle must be a JSON object, got {type(document).__name__}"
        )
    
    for key in COLLECTION_KEYS:
        if document.get(key) is None:
            document[key] = []
    
    try:
        bundle = LedgerBundle.model_validate(document)
    except PydanticValidationError as e:
        raise ParseError(
            f"Bundle has {e.error_count()} invalid field(s)",
            details=e.errors(include_url=False),
        )
    
    _check_unique_ids(bundle)
    return bundle
