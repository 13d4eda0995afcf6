"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All data flowing through the store must conform to these schemas.
"""

from ledger.models.entities import (
    DEFAULT_CATEGORIES,
    FALLBACK_CATEGORY_ID,
    SETTINGS_ID,
    Account,
    Budget,
    BudgetDraft,
    BudgetPeriod,
    Category,
    CategoryDraft,
    Expense,
    ExpenseDraft,
    LedgerModel,
    PaymentMethod,
    Settings,
    SettingsPatch,
    Theme,
    format_timestamp,
    new_id,
)
from ledger.models.events import (
    ChangeEvent,
    ChangeKind,
    Collection,
)
from ledger.models.results import (
    BudgetStatus,
    DailyTotal,
    DateWindow,
    SpendingSummary,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Entity models
    "DEFAULT_CATEGORIES",
    "FALLBACK_CATEGORY_ID",
    "SETTINGS_ID",
    "Account",
    "Budget",
    "BudgetDraft",
    "BudgetPeriod",
    "Category",
    "CategoryDraft",
    "Expense",
    "ExpenseDraft",
    "LedgerModel",
    "PaymentMethod",
    "Settings",
    "SettingsPatch",
    "Theme",
    "format_timestamp",
    "new_id",
    # Change events
    "ChangeEvent",
    "ChangeKind",
    "Collection",
    # Results
    "BudgetStatus",
    "DailyTotal",
    "DateWindow",
    "SpendingSummary",
    "ValidationIssue",
    "ValidationResult",
]
