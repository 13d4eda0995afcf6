"""
Result Models for Ledger

Typed results returned by the validation factories, the aggregation
engine and the budget evaluator. None of these are persisted.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledger.models.entities import BudgetPeriod


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""
    
    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'invalid_choice')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ValidationResult(BaseModel):
    """
    Outcome of an entity factory.
    
    Either ``value`` holds the built model and ``issues`` is empty,
    or ``value`` is None and ``issues`` explains why.
    """
    
    issues: list[ValidationIssue] = Field(default_factory=list)
    value: Optional[Any] = None
    
    @property
    def is_valid(self) -> bool:
        return not self.issues
    
    @property
    def fields(self) -> list[str]:
        """Names of the fields with issues, in report order."""
        return [issue.field for issue in self.issues]


# =============================================================================
# AGGREGATION MODELS
# =============================================================================

class DateWindow(BaseModel):
    """A closed date interval ``[start, end]``."""
    
    model_config = ConfigDict(frozen=True)
    
    start: dt.date
    end: dt.date
    
    @model_validator(mode='after')
    def validate_order(self) -> 'DateWindow':
        if self.end < self.start:
            raise ValueError("Window end cannot be before start")
        return self
    
    def contains(self, day: dt.date) -> bool:
        return self.start <= day <= self.end
    
    def days(self) -> list[dt.date]:
        """Every date in the window, in order."""
        count = (self.end - self.start).days + 1
        return [self.start + dt.timedelta(days=offset) for offset in range(count)]


class DailyTotal(BaseModel):
    """Spend on one calendar day."""
    
    day: dt.date
    total: Decimal


class SpendingSummary(BaseModel):
    """
    Totals for the three headline windows.
    
    Each total is an independent read of the store; a write landing
    between reads can make them momentarily inconsistent.
    """
    
    today: Decimal
    this_week: Decimal
    this_month: Decimal
    computed_on: dt.date


# =============================================================================
# BUDGET MODELS
# =============================================================================

class BudgetStatus(BaseModel):
    """Spend-to-date of one budget in its current window."""
    
    budget_id: str
    name: str
    category: str
    period: BudgetPeriod
    window_start: dt.date
    window_end: dt.date
    spent: Decimal
    limit: Decimal
    remaining: Decimal = Field(
        ...,
        description="limit - spent; negative when over budget"
    )
    
    @property
    def is_over_budget(self) -> bool:
        return self.remaining < 0
    
    @property
    def percent_used(self) -> float:
        if self.limit <= 0:
            return 0.0
        return float(self.spent / self.limit * 100)
