"""
Core Data Models for Ledger

These models define the schemas for the four persisted entities:
Expense, Category, Budget and the Settings singleton.

Python attributes are snake_case. The serialized form (storage records and
JSON bundles) uses the camelCase field names of the bundle format, e.g.
``paymentMethod`` and ``createdAt``. Both spellings are accepted on input.

DESIGN DECISION: Persisted models carry types but no invariants.
Positivity, required text and the like are enforced by the factory
functions in ``ledger.validation`` at insert/update time, so that trusted
bundles and lossy workbook rows can still be loaded verbatim.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


# Fixed id of the settings singleton; never regenerated.
SETTINGS_ID = "default"

# Category id that workbook imports fall back to.
FALLBACK_CATEGORY_ID = "other"


def new_id() -> str:
    """Return a fresh 128-bit random identifier."""
    return str(uuid4())


def format_timestamp(value: dt.datetime) -> str:
    """Fixed-width UTC text, so lexical order matches chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PaymentMethod(str, Enum):
    """How an expense was paid."""
    UPI = "UPI"
    CARD = "Card"
    NET_BANKING = "Net Banking"
    CASH = "Cash"
    OTHER = "Other"


class Account(str, Enum):
    """Financial account an expense was paid from."""
    ICICI = "ICICI"
    SBI = "SBI"
    HDFC = "HDFC"
    AXIS = "Axis"
    OTHER = "Other"


class BudgetPeriod(str, Enum):
    """Recurrence of a budget window."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Theme(str, Enum):
    """UI theme preference."""
    LIGHT = "light"
    DARK = "dark"


class LedgerModel(BaseModel):
    """Base for every persisted model: camelCase on the wire, snake_case in Python."""
    
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
    
    def to_record(self) -> dict[str, Any]:
        """Convert to a JSON-ready dict keyed by serialized field names."""
        return self.model_dump(mode="json", by_alias=True)
    
    @classmethod
    def from_record(cls, record: dict[str, Any]):
        """Rebuild a model from a storage record or bundle entry."""
        return cls.model_validate(record)


# =============================================================================
# EXPENSE
# =============================================================================

class ExpenseDraft(LedgerModel):
    """
    Caller-supplied fields of an expense.
    
    The store assigns ``id``, ``created_at`` and ``updated_at``.
    """
    
    amount: Decimal = Field(
        ...,
        description="Amount spent; must be positive when inserted"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date used for all windowed grouping"
    )
    time: str = Field(
        ...,
        description="Wall-clock time of day as HH:MM"
    )
    category: str = Field(
        ...,
        description="Category id; may dangle after the category is deleted"
    )
    payment_method: PaymentMethod
    account: Account
    
    items: Optional[str] = None
    where: Optional[str] = None
    note: Optional[str] = None
    
    # Inline base64 blobs in display order
    attachments: list[str] = Field(default_factory=list)
    
    # Advisory flags for the UI; the core never acts on them
    is_recurring: bool = False
    is_template: bool = False


class Expense(ExpenseDraft):
    """A single spending event as persisted by the store."""
    
    id: str = Field(
        default_factory=new_id,
        description="Opaque unique id, immutable"
    )
    created_at: dt.datetime = Field(
        ...,
        description="Set once at insertion"
    )
    updated_at: dt.datetime = Field(
        ...,
        description="Refreshed on every update"
    )

    @field_serializer("created_at", "updated_at", when_used="json")
    def _serialize_timestamp(self, value: dt.datetime) -> str:
        return format_timestamp(value)


# =============================================================================
# CATEGORY
# =============================================================================

class CategoryDraft(LedgerModel):
    """Caller-supplied fields of a category."""
    
    name: str
    icon: str = Field(
        default="📁",
        description="Symbolic icon reference"
    )
    color: str = Field(
        default="gray",
        description="Symbolic palette key"
    )
    is_default: bool = False


class Category(CategoryDraft):
    """A spending label. Deleting one never cascades to expenses."""
    
    id: str = Field(default_factory=new_id)


# =============================================================================
# BUDGET
# =============================================================================

class BudgetDraft(LedgerModel):
    """Caller-supplied fields of a budget."""
    
    name: str
    amount: Decimal = Field(
        ...,
        description="Spending limit per window; must be positive when inserted"
    )
    category: str = Field(
        ...,
        description="Category id; may dangle"
    )
    period: BudgetPeriod
    start_date: dt.date = Field(
        ...,
        description="Anchor for window computation"
    )
    is_active: bool = True


class Budget(BudgetDraft):
    """A recurring spending limit as persisted by the store."""
    
    id: str = Field(default_factory=new_id)
    created_at: dt.datetime
    updated_at: dt.datetime

    @field_serializer("created_at", "updated_at", when_used="json")
    def _serialize_timestamp(self, value: dt.datetime) -> str:
        return format_timestamp(value)


# =============================================================================
# SETTINGS SINGLETON
# =============================================================================

class Settings(LedgerModel):
    """Process-wide preferences, stored as a single record."""
    
    id: str = SETTINGS_ID
    currency: str = "₹"
    theme: Theme = Theme.LIGHT
    language: str = "en"
    notifications: bool = True
    budget_alerts: bool = True


class SettingsPatch(LedgerModel):
    """Partial update of the settings singleton."""
    
    currency: Optional[str] = None
    theme: Optional[Theme] = None
    language: Optional[str] = None
    notifications: Optional[bool] = None
    budget_alerts: Optional[bool] = None


# =============================================================================
# SEED DATA
# =============================================================================

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="food", name="Food & Dining", icon="🍽️", color="orange", is_default=True),
    Category(id="transport", name="Transport", icon="🚗", color="blue", is_default=True),
    Category(id="shopping", name="Shopping", icon="🛍️", color="pink", is_default=True),
    Category(id="bills", name="Bills & Utilities", icon="💡", color="yellow", is_default=True),
    Category(id="entertainment", name="Entertainment", icon="🎬", color="purple", is_default=True),
    Category(id="health", name="Health", icon="💊", color="red", is_default=True),
    Category(id="education", name="Education", icon="📚", color="cyan", is_default=True),
    Category(id=FALLBACK_CATEGORY_ID, name="Other", icon="📁", color="gray", is_default=True),
)
