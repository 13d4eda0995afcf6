"""
Workbook Format

The lossy spreadsheet format: one sheet per entity type with fixed,
human-readable column names.

Lost on export:
- ids (no id column; import assigns fresh ids)
- attachments (not representable in a cell)
- the settings singleton (no sheet)

Import never rejects a row. Every missing or unreadable cell falls back
to a default on its own:

    Expenses.Date            -> today
    Expenses.Time            -> 00:00
    *.Amount                 -> 0
    *.Category               -> "other"
    Expenses.Payment Method  -> UPI
    Expenses.Account         -> Other
    Budgets.Period           -> monthly
    Budgets.Is Active        -> True only for the literal "Yes"
    Categories.Is Default    -> True only for the literal "Yes"
"""

import datetime as dt
import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from io import BytesIO
from typing import Any, Optional, TypeVar
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ledger.models.entities import (
    FALLBACK_CATEGORY_ID,
    Account,
    Budget,
    BudgetPeriod,
    Category,
    Expense,
    PaymentMethod,
    format_timestamp,
    new_id,
)
from ledger.reconcile.errors import ParseError
from ledger.store import LedgerSnapshot


E = TypeVar("E", bound=Enum)

EXPENSES_SHEET = "Expenses"
BUDGETS_SHEET = "Budgets"
CATEGORIES_SHEET = "Categories"

EXPENSE_COLUMNS = (
    "Date",
    "Time",
    "Amount",
    "Category",
    "Items",
    "Location",
    "Payment Method",
    "Account",
    "Notes",
    "Created At",
)

BUDGET_COLUMNS = (
    "Name",
    "Amount",
    "Category",
    "Period",
    "Start Date",
    "Is Active",
    "Created At",
)

CATEGORY_COLUMNS = (
    "Name",
    "Icon",
    "Color",
    "Is Default",
)

SHEET_COLUMNS = {
    EXPENSES_SHEET: EXPENSE_COLUMNS,
    BUDGETS_SHEET: BUDGET_COLUMNS,
    CATEGORIES_SHEET: CATEGORY_COLUMNS,
}

DEFAULT_TIME = "00:00"
DEFAULT_BUDGET_NAME = "Budget"
DEFAULT_CATEGORY_NAME = "Category"
DEFAULT_CATEGORY_ICON = "📁"
DEFAULT_CATEGORY_COLOR = "gray"

TIME_CELL_PATTERN = re.compile(
    r"^(\d{1,2}):(\d{2})(?::\d{2})?(?:\s*([AaPp])\.?[Mm]\.?)?$"
)

# Numeric cells hold at most 16 significant digits; longer amounts are
# written as text so the exact value survives a round trip.
MAX_NUMERIC_DIGITS = 15
AMOUNT_FORMAT = "#,##0.00##"


# =============================================================================
# EXPORT
# =============================================================================

def yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def amount_cell(amount: Decimal) -> Any:
    """The amount as a number cell, or as text when a number would round it."""
    if amount.is_finite() and len(amount.normalize().as_tuple().digits) <= MAX_NUMERIC_DIGITS:
        return amount
    return str(amount)


def expense_to_row(expense: Expense) -> list[Any]:
    return [
        expense.date.isoformat(),
        expense.time,
        amount_cell(expense.amount),
        expense.category,
        expense.items or "",
        expense.where or "",
        expense.payment_method.value,
        expense.account.value,
        expense.note or "",
        format_timestamp(expense.created_at),
    ]


def budget_to_row(budget: Budget) -> list[Any]:
    return [
        budget.name,
        amount_cell(budget.amount),
        budget.category,
        budget.period.value,
        budget.start_date.isoformat(),
        yes_no(budget.is_active),
        format_timestamp(budget.created_at),
    ]


def category_to_row(category: Category) -> list[Any]:
    return [
        category.name,
        category.icon,
        category.color,
        yes_no(category.is_default),
    ]


def _format_amounts(sheet, columns: tuple[str, ...]) -> None:
    column = columns.index("Amount") + 1
    for (cell,) in sheet.iter_rows(min_row=2, min_col=column, max_col=column):
        if cell.data_type == "n":
            cell.number_format = AMOUNT_FORMAT


def write_workbook(snapshot: LedgerSnapshot) -> bytes:
    """Render expenses, budgets and categories as an .xlsx file."""
    workbook = Workbook()
    
    expenses_sheet = workbook.active
    expenses_sheet.title = EXPENSES_SHEET
    expenses_sheet.append(list(EXPENSE_COLUMNS))
    for expense in snapshot.expenses:
        expenses_sheet.append(expense_to_row(expense))
    _format_amounts(expenses_sheet, EXPENSE_COLUMNS)
    
    budgets_sheet = workbook.create_sheet(BUDGETS_SHEET)
    budgets_sheet.append(list(BUDGET_COLUMNS))
    for budget in snapshot.budgets:
        budgets_sheet.append(budget_to_row(budget))
    _format_amounts(budgets_sheet, BUDGET_COLUMNS)
    
    categories_sheet = workbook.create_sheet(CATEGORIES_SHEET)
    categories_sheet.append(list(CATEGORY_COLUMNS))
    for category in snapshot.categories:
        categories_sheet.append(category_to_row(category))
    
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


# =============================================================================
# IMPORT - reading sheets
# =============================================================================

def read_workbook(data: bytes) -> dict[str, list[dict[str, Any]]]:
    """
    Read the known sheets as lists of {header: cell} rows.
    
    Blank rows are skipped. A missing sheet reads as no rows.
    
    Raises:
        ParseError: If ``data`` is not an .xlsx workbook or a sheet is damaged
    """
    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        raise ParseError(f"File is not a readable workbook: {e}")
    
    sheets: dict[str, list[dict[str, Any]]] = {}
    try:
        for name in SHEET_COLUMNS:
            if name not in workbook.sheetnames:
                sheets[name] = []
                continue
            
            rows = list(workbook[name].iter_rows(values_only=True))
            if not rows:
                sheets[name] = []
                continue
            
            header = [str(cell).strip() if cell is not None else "" for cell in rows[0]]
            sheets[name] = [
                dict(zip(header, row))
                for row in rows[1:]
                if any(cell not in (None, "") for cell in row)
            ]
    except Exception as e:
        # Sheet XML is parsed lazily, so a damaged sheet only fails here
        raise ParseError(f"Workbook sheet could not be read: {e}") from e
    finally:
        workbook.close()
    
    return sheets


# =============================================================================
# IMPORT - cell defaulting
# =============================================================================

def cell_text(value: Any) -> Optional[str]:
    """Cell as stripped text; None for empty cells."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def cell_date(value: Any, default: dt.date) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = cell_text(value)
    if text:
        try:
            return dt.date.fromisoformat(text[:10])
        except ValueError:
            pass
    return default


def cell_time(value: Any) -> str:
    """
    Cell as 24-hour HH:MM.
    
    Accepts "H:MM", "HH:MM" or "HH:MM:SS", optionally followed by AM/PM.
    Anything else reads as 00:00.
    """
    if isinstance(value, (dt.time, dt.datetime)):
        return value.strftime("%H:%M")
    text = cell_text(value)
    if not text:
        return DEFAULT_TIME
    
    match = TIME_CELL_PATTERN.match(text)
    if not match:
        return DEFAULT_TIME
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    if minute > 59:
        return DEFAULT_TIME
    if meridiem:
        if not 1 <= hour <= 12:
            return DEFAULT_TIME
        hour = hour % 12 + (12 if meridiem.upper() == "P" else 0)
    elif hour > 23:
        return DEFAULT_TIME
    return f"{hour:02d}:{minute:02d}"


def cell_amount(value: Any) -> Decimal:
    if isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        text = cell_text(value)
        if text is None:
            return Decimal("0")
        try:
            amount = Decimal(text.replace(",", ""))
        except InvalidOperation:
            return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def cell_choice(enum_cls: type[E], value: Any, default: E) -> E:
    text = cell_text(value)
    if text is None:
        return default
    try:
        return enum_cls(text)
    except ValueError:
        return default


def cell_flag(value: Any) -> bool:
    """True only when the cell is literally "Yes"."""
    return value == "Yes"


def cell_timestamp(value: Any, default: dt.datetime) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value if value.tzinfo else value.replace(tzinfo=dt.timezone.utc)
    text = cell_text(value)
    if text:
        try:
            parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return default
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.timezone.utc)
    return default


# =============================================================================
# IMPORT - rows to entities
# =============================================================================

def expense_from_row(row: dict[str, Any], today: dt.date, now: dt.datetime) -> Expense:
    return Expense(
        id=new_id(),
        date=cell_date(row.get("Date"), today),
        time=cell_time(row.get("Time")),
        amount=cell_amount(row.get("Amount")),
        category=cell_text(row.get("Category")) or FALLBACK_CATEGORY_ID,
        items=cell_text(row.get("Items")),
        where=cell_text(row.get("Location")),
        payment_method=cell_choice(PaymentMethod, row.get("Payment Method"), PaymentMethod.UPI),
        account=cell_choice(Account, row.get("Account"), Account.OTHER),
        note=cell_text(row.get("Notes")),
        created_at=cell_timestamp(row.get("Created At"), now),
        updated_at=now,
    )


def budget_from_row(row: dict[str, Any], today: dt.date, now: dt.datetime) -> Budget:
    return Budget(
        id=new_id(),
        name=cell_text(row.get("Name")) or DEFAULT_BUDGET_NAME,
        amount=cell_amount(row.get("Amount")),
        category=cell_text(row.get("Category")) or FALLBACK_CATEGORY_ID,
        period=cell_choice(BudgetPeriod, row.get("Period"), BudgetPeriod.MONTHLY),
        start_date=cell_date(row.get("Start Date"), today),
        is_active=cell_flag(row.get("Is Active")),
        created_at=cell_timestamp(row.get("Created At"), now),
        updated_at=now,
    )


def category_from_row(row: dict[str, Any]) -> Category:
    return Category(
        id=new_id(),
        name=cell_text(row.get("Name")) or DEFAULT_CATEGORY_NAME,
        icon=cell_text(row.get("Icon")) or DEFAULT_CATEGORY_ICON,
        color=cell_text(row.get("Color")) or DEFAULT_CATEGORY_COLOR,
        is_default=cell_flag(row.get("Is Default")),
    )
