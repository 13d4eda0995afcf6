"""
Aggregation Engine

Computes sums and breakdowns over the expenses in a date window.

GUARANTEES:
- Read-only: never mutates the store
- Always fresh: every call re-reads the store, nothing is cached
- Empty input is not an error: a window with no expenses totals 0

Each call takes its own read. Two calls (e.g. "today" then "this week")
can straddle a concurrent write and disagree with each other.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional

from ledger.models.entities import Expense
from ledger.models.results import DailyTotal, DateWindow, SpendingSummary
from ledger.queries.windows import month_window, today_window, week_window
from ledger.store import ExpenseFilter, LedgerStore


ZERO = Decimal("0")


class Dimension(str, Enum):
    """Closed set of grouping dimensions."""
    CATEGORY = "category"
    ACCOUNT = "account"
    PAYMENT_METHOD = "payment_method"


def dimension_key(expense: Expense, dimension: Dimension) -> str:
    """The group an expense falls into along ``dimension``."""
    if dimension == Dimension.CATEGORY:
        return expense.category
    elif dimension == Dimension.ACCOUNT:
        return expense.account.value
    elif dimension == Dimension.PAYMENT_METHOD:
        return expense.payment_method.value
    raise ValueError(f"Unknown dimension: {dimension!r}")


def top(totals: dict[str, Decimal], n: Optional[int] = None) -> list[tuple[str, Decimal]]:
    """Groups sorted by total, largest first; ties by key."""
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return ranked if n is None else ranked[:n]


class AggregationEngine:
    """On-demand sums over a snapshot of the expense collection."""
    
    def __init__(self, store: LedgerStore):
        self._store = store
    
    async def _expenses(
        self,
        start: dt.date,
        end: dt.date,
        category: Optional[str] = None,
    ) -> list[Expense]:
        return await self._store.expenses.list(ExpenseFilter(
            date_from=start,
            date_to=end,
            category=category,
        ))
    
    async def total_in_window(
        self,
        start: dt.date,
        end: dt.date,
        category: Optional[str] = None,
    ) -> Decimal:
        """
        Sum of amounts for expenses dated in ``[start, end]``.
        
        Args:
            start: First day of the window
            end: Last day of the window
            category: Only count expenses with this raw category id
        
        Returns:
            The total; 0 if nothing matches
        """
        expenses = await self._expenses(start, end, category)
        return sum((expense.amount for expense in expenses), ZERO)
    
    async def total_for(self, window: DateWindow, category: Optional[str] = None) -> Decimal:
        return await self.total_in_window(window.start, window.end, category)
    
    async def totals_by_dimension(
        self,
        start: dt.date,
        end: dt.date,
        dimension: Dimension,
    ) -> dict[str, Decimal]:
        """
        Totals per dimension value for expenses dated in ``[start, end]``.
        
        Only values that occur in at least one matching expense appear.
        Key order is unspecified; use ``top()`` for a ranked view.
        """
        totals: dict[str, Decimal] = {}
        for expense in await self._expenses(start, end):
            key = dimension_key(expense, dimension)
            totals[key] = totals.get(key, ZERO) + expense.amount
        return totals
    
    async def daily_totals(self, start: dt.date, end: dt.date) -> list[DailyTotal]:
        """One entry per day in ``[start, end]``, zero days included."""
        if end < start:
            return []
        window = DateWindow(start=start, end=end)
        by_day: dict[dt.date, Decimal] = {}
        for expense in await self._expenses(start, end):
            by_day[expense.date] = by_day.get(expense.date, ZERO) + expense.amount
        return [DailyTotal(day=day, total=by_day.get(day, ZERO)) for day in window.days()]
    
    async def spending_summary(self, today: Optional[dt.date] = None) -> SpendingSummary:
        """Totals for today, this week and this month, each read separately."""
        today = today or self._store.today()
        return SpendingSummary(
            today=await self.total_for(today_window(today)),
            this_week=await self.total_for(week_window(today)),
            this_month=await self.total_for(month_window(today)),
            computed_on=today,
        )
