"""
Budget Evaluator

For each active budget, finds the window that contains "today" and the
spend-to-date of the budget's category inside it.

Window policy per period:
- weekly:  7-day tiles anchored at ``start_date``. Dates before the anchor
           fall into earlier tiles of the same grid.
- monthly: calendar month containing today. The day-of-month of
           ``start_date`` is deliberately ignored.
- yearly:  calendar year containing today.

Being over budget is a normal state: ``remaining`` just goes negative.
"""

import datetime as dt
from typing import Optional

import structlog

from ledger.models.entities import Budget, BudgetPeriod
from ledger.models.results import BudgetStatus, DateWindow
from ledger.queries import AggregationEngine, month_window, year_window
from ledger.store import BudgetFilter, LedgerStore


def weekly_window(anchor: dt.date, today: dt.date) -> DateWindow:
    """The 7-day tile, counted from ``anchor``, that contains ``today``."""
    tile = (today - anchor).days // 7
    start = anchor + dt.timedelta(days=7 * tile)
    return DateWindow(start=start, end=start + dt.timedelta(days=6))


def current_window(budget: Budget, today: dt.date) -> DateWindow:
    """Bounds of the budget's window that contains ``today``."""
    if budget.period == BudgetPeriod.WEEKLY:
        return weekly_window(budget.start_date, today)
    elif budget.period == BudgetPeriod.MONTHLY:
        return month_window(today)
    elif budget.period == BudgetPeriod.YEARLY:
        return year_window(today)
    raise ValueError(f"Unknown budget period: {budget.period!r}")


class BudgetEvaluator:
    """Reports spend against each active budget."""
    
    def __init__(
        self,
        store: LedgerStore,
        aggregation: Optional[AggregationEngine] = None,
    ):
        self._store = store
        self._aggregation = aggregation or AggregationEngine(store)
        self._logger = structlog.get_logger("ledger.budgets")
    
    async def evaluate(self, budget: Budget, today: Optional[dt.date] = None) -> BudgetStatus:
        """
        Spend-to-date for one budget.
        
        A dangling category id is matched literally and simply finds no
        expenses.
        """
        today = today or self._store.today()
        window = current_window(budget, today)
        spent = await self._aggregation.total_for(window, category=budget.category)
        
        return BudgetStatus(
            budget_id=budget.id,
            name=budget.name,
            category=budget.category,
            period=budget.period,
            window_start=window.start,
            window_end=window.end,
            spent=spent,
            limit=budget.amount,
            remaining=budget.amount - spent,
        )
    
    async def evaluate_active(self, today: Optional[dt.date] = None) -> list[BudgetStatus]:
        """Status of every budget with ``is_active`` set."""
        today = today or self._store.today()
        budgets = await self._store.budgets.list(BudgetFilter(is_active=True))
        
        statuses = [await self.evaluate(budget, today) for budget in budgets]
        over = [status.budget_id for status in statuses if status.is_over_budget]
        if over:
            self._logger.warning("budgets_exceeded", budget_ids=over, on=today.isoformat())
        return statuses
