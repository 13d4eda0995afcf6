"""
Entity Factories

Each factory turns caller input (a mapping or a draft model) into a draft
that satisfies the entity's invariants, and reports every problem it finds
instead of stopping at the first one.

Validation runs in two steps:

STEP 1 - PARSING:
- Type coercion through the pydantic draft model
- Required field presence
- Enum membership (payment method, account, period, theme)

STEP 2 - INVARIANTS:
- Positive amounts
- Non-empty required text
- HH:MM time format

Factories never raise. The store turns a failed result into
``ValidationError`` at the insert/update boundary.
"""

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from ledger.models.entities import (
    BudgetDraft,
    CategoryDraft,
    ExpenseDraft,
    SettingsPatch,
)
from ledger.models.results import ValidationIssue, ValidationResult


TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

EntityInput = Union[Mapping[str, Any], BaseModel]


class ValidationError(Exception):
    """Structural constraint violated on insert or update."""
    
    def __init__(self, entity: str, issues: list[ValidationIssue]):
        self.entity = entity
        self.issues = list(issues)
        details = "; ".join(f"{issue.field}: {issue.message}" for issue in self.issues)
        super().__init__(f"Invalid {entity}: {details}")


def _issue_type(error_type: str) -> str:
    if error_type == "missing":
        return "missing"
    if error_type == "enum":
        return "invalid_choice"
    return "invalid_type"


def _parse(
    model_cls: type[BaseModel],
    data: EntityInput,
) -> tuple[Optional[BaseModel], list[ValidationIssue]]:
    """
    Step 1: coerce input into the draft model, collecting pydantic errors.
    
    Surrounding whitespace is stripped from text values. Persisted models
    keep text verbatim, so this happens only here.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    data = {
        key: value.strip() if isinstance(value, str) else value
        for key, value in data.items()
    }
    
    try:
        return model_cls.model_validate(data), []
    except PydanticValidationError as e:
        issues = []
        for error in e.errors():
            loc = error.get("loc") or ("record",)
            issues.append(ValidationIssue(
                field=to_snake(str(loc[0])),
                issue_type=_issue_type(error["type"]),
                message=error["msg"],
            ))
        return None, issues


def _check_positive(field: str, value: Decimal, label: str) -> list[ValidationIssue]:
    if value <= 0:
        return [ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=f"{label} must be greater than zero",
        )]
    return []


def _check_required_text(field: str, value: Optional[str], label: str) -> list[ValidationIssue]:
    if not value:
        return [ValidationIssue(
            field=field,
            issue_type="missing",
            message=f"{label} is required",
        )]
    return []


def _result(draft: Optional[BaseModel], issues: list[ValidationIssue]) -> ValidationResult:
    if issues:
        return ValidationResult(issues=issues)
    return ValidationResult(value=draft)


def build_expense(data: EntityInput) -> ValidationResult:
    """Build an ``ExpenseDraft`` that satisfies the expense invariants."""
    draft, issues = _parse(ExpenseDraft, data)
    if draft is None:
        return _result(None, issues)
    
    issues.extend(_check_positive("amount", draft.amount, "Amount"))
    issues.extend(_check_required_text("category", draft.category, "Category"))
    
    if not draft.time:
        issues.append(ValidationIssue(
            field="time",
            issue_type="missing",
            message="Time is required",
        ))
    elif not TIME_PATTERN.match(draft.time):
        issues.append(ValidationIssue(
            field="time",
            issue_type="invalid_format",
            message=f"Time must be HH:MM, got {draft.time!r}",
        ))
    
    return _result(draft, issues)


def build_category(data: EntityInput) -> ValidationResult:
    """Build a ``CategoryDraft`` with a non-empty name."""
    draft, issues = _parse(CategoryDraft, data)
    if draft is None:
        return _result(None, issues)
    
    issues.extend(_check_required_text("name", draft.name, "Category name"))
    return _result(draft, issues)


def build_budget(data: EntityInput) -> ValidationResult:
    """Build a ``BudgetDraft`` that satisfies the budget invariants."""
    draft, issues = _parse(BudgetDraft, data)
    if draft is None:
        return _result(None, issues)
    
    issues.extend(_check_positive("amount", draft.amount, "Budget amount"))
    issues.extend(_check_required_text("name", draft.name, "Budget name"))
    issues.extend(_check_required_text("category", draft.category, "Category"))
    return _result(draft, issues)


def build_settings_patch(data: EntityInput) -> ValidationResult:
    """Build a ``SettingsPatch``; provided text fields must be non-empty."""
    patch, issues = _parse(SettingsPatch, data)
    if patch is None:
        return _result(None, issues)
    
    if patch.currency is not None:
        issues.extend(_check_required_text("currency", patch.currency, "Currency"))
    if patch.language is not None:
        issues.extend(_check_required_text("language", patch.language, "Language"))
    return _result(patch, issues)


def require_valid(entity: str, result: ValidationResult) -> Any:
    """Return the built value or raise ``ValidationError``."""
    if not result.is_valid:
        raise ValidationError(entity, result.issues)
    return result.value
