"""Entity validation package."""

from ledger.validation.validator import (
    ValidationError,
    build_budget,
    build_category,
    build_expense,
    build_settings_patch,
    require_valid,
)

__all__ = [
    "ValidationError",
    "build_budget",
    "build_category",
    "build_expense",
    "build_settings_patch",
    "require_valid",
]
