"""
Tests for canonical windows and the aggregation engine.
"""

import datetime as dt
from decimal import Decimal

import pytest

from ledger.models import DateWindow
from ledger.queries import (
    EARLIEST_DATE,
    AggregationEngine,
    Dimension,
    WindowKind,
    custom_window,
    month_window,
    resolve_window,
    today_window,
    top,
    week_window,
    year_window,
)


TODAY = dt.date(2024, 12, 15)  # a Sunday


class TestWindows:
    """Tests for the window functions."""

    def test_today(self):
        assert today_window(TODAY) == DateWindow(start=TODAY, end=TODAY)

    @pytest.mark.parametrize("day", [
        dt.date(2024, 12, 15),  # Sunday
        dt.date(2024, 12, 18),  # Wednesday
        dt.date(2024, 12, 21),  # Saturday
    ])
    def test_week_starts_on_sunday(self, day):
        window = week_window(day)
        assert window.start == dt.date(2024, 12, 15)
        assert window.end == dt.date(2024, 12, 21)

    def test_week_spanning_years(self):
        window = week_window(dt.date(2025, 1, 1))
        assert window == DateWindow(start=dt.date(2024, 12, 29), end=dt.date(2025, 1, 4))

    def test_month_in_leap_year(self):
        window = month_window(dt.date(2024, 2, 10))
        assert window == DateWindow(start=dt.date(2024, 2, 1), end=dt.date(2024, 2, 29))

    def test_year(self):
        assert year_window(TODAY) == DateWindow(start=dt.date(2024, 1, 1), end=dt.date(2024, 12, 31))

    def test_custom_defaults(self):
        """A lone from-date is a single day; no bounds runs up to today."""
        single = custom_window(dt.date(2024, 12, 3), None, TODAY)
        assert single == DateWindow(start=dt.date(2024, 12, 3), end=dt.date(2024, 12, 3))

        open_start = custom_window(None, dt.date(2024, 12, 3), TODAY)
        assert open_start.start == EARLIEST_DATE

        unbounded = custom_window(None, None, TODAY)
        assert unbounded == DateWindow(start=EARLIEST_DATE, end=TODAY)

    def test_resolve_window(self):
        assert resolve_window(WindowKind.WEEK, TODAY) == week_window(TODAY)
        assert resolve_window(WindowKind.MONTH, TODAY) == month_window(TODAY)
        custom = resolve_window(
            WindowKind.CUSTOM,
            TODAY,
            date_from=dt.date(2024, 12, 1),
            date_to=dt.date(2024, 12, 5),
        )
        assert custom.days()[-1] == dt.date(2024, 12, 5)


class TestTotals:
    """Tests for windowed totals."""

    @pytest.fixture
    def engine(self, store):
        return AggregationEngine(store)

    async def test_empty_store_totals_zero(self, engine):
        total = await engine.total_in_window(dt.date(2024, 1, 1), dt.date(2024, 12, 31))
        assert total == Decimal("0")
        assert isinstance(total, Decimal)

    async def test_window_with_no_match(self, store, engine, expense_data):
        await store.expenses.insert(expense_data(date="2024-11-30"))
        assert await engine.total_for(month_window(TODAY)) == 0

    async def test_totals_are_fresh(self, store, engine, expense_data):
        """Each call re-reads the store."""
        await store.expenses.insert(expense_data(amount="150"))
        assert await engine.total_in_window(TODAY, TODAY) == Decimal("150")

        await store.expenses.insert(expense_data(amount="50"))
        assert await engine.total_in_window(TODAY, TODAY) == Decimal("200")

    async def test_bounds_are_inclusive(self, store, engine, expense_data):
        for date in ("2024-11-30", "2024-12-01", "2024-12-31", "2025-01-01"):
            await store.expenses.insert(expense_data(date=date, amount="10"))
        assert await engine.total_for(month_window(TODAY)) == Decimal("20")

    async def test_inverted_window_is_empty(self, store, engine, expense_data):
        await store.expenses.insert(expense_data())
        assert await engine.total_in_window(dt.date(2024, 12, 31), dt.date(2024, 12, 1)) == 0

    async def test_decimal_sums_are_exact(self, store, engine, expense_data):
        for _ in range(3):
            await store.expenses.insert(expense_data(amount="0.10"))
        assert await engine.total_in_window(TODAY, TODAY) == Decimal("0.30")

    async def test_category_filter(self, store, engine, expense_data):
        await store.expenses.insert(expense_data(category="food", amount="40"))
        await store.expenses.insert(expense_data(category="bills", amount="60"))
        assert await engine.total_in_window(TODAY, TODAY, category="bills") == Decimal("60")


class TestBreakdowns:
    """Tests for grouping by dimension and daily series."""

    @pytest.fixture
    async def engine(self, store, expense_data):
        rows = [
            dict(amount="100", category="food", account="HDFC", paymentMethod="UPI"),
            dict(amount="250", category="bills", account="SBI", paymentMethod="Net Banking"),
            dict(amount="50", category="food", account="HDFC", paymentMethod="Cash"),
            dict(amount="30", category="pets-deleted", account="Axis", paymentMethod="UPI", date="2024-12-13"),
        ]
        for row in rows:
            await store.expenses.insert(expense_data(**row))
        return AggregationEngine(store)

    async def test_by_category(self, engine):
        totals = await engine.totals_by_dimension(
            dt.date(2024, 12, 1), dt.date(2024, 12, 31), Dimension.CATEGORY
        )
        assert totals == {
            "food": Decimal("150"),
            "bills": Decimal("250"),
            "pets-deleted": Decimal("30"),
        }

    async def test_dangling_category_keeps_raw_id(self, store, engine):
        """A category id with no category record is still its own group."""
        assert await store.categories.get("pets-deleted") is None
        totals = await engine.totals_by_dimension(TODAY - dt.timedelta(days=2), TODAY, Dimension.CATEGORY)
        assert totals["pets-deleted"] == Decimal("30")

    async def test_by_account_and_payment_method(self, engine):
        by_account = await engine.totals_by_dimension(TODAY, TODAY, Dimension.ACCOUNT)
        assert by_account == {"HDFC": Decimal("150"), "SBI": Decimal("250")}

        by_method = await engine.totals_by_dimension(TODAY, TODAY, Dimension.PAYMENT_METHOD)
        assert by_method == {
            "UPI": Decimal("100"),
            "Net Banking": Decimal("250"),
            "Cash": Decimal("50"),
        }

    async def test_groups_sum_to_window_total(self, engine):
        start, end = dt.date(2024, 12, 1), dt.date(2024, 12, 31)
        total = await engine.total_in_window(start, end)
        for dimension in Dimension:
            totals = await engine.totals_by_dimension(start, end, dimension)
            assert sum(totals.values()) == total
            assert all(value > 0 for value in totals.values())

    async def test_top(self, engine):
        totals = await engine.totals_by_dimension(TODAY, TODAY, Dimension.PAYMENT_METHOD)
        assert top(totals, 2) == [("Net Banking", Decimal("250")), ("UPI", Decimal("100"))]
        assert len(top(totals)) == 3

    async def test_daily_totals_include_zero_days(self, engine):
        days = await engine.daily_totals(dt.date(2024, 12, 12), TODAY)
        assert [d.day for d in days] == [dt.date(2024, 12, n) for n in range(12, 16)]
        assert [d.total for d in days] == [
            Decimal("0"), Decimal("30"), Decimal("0"), Decimal("400"),
        ]

    async def test_daily_totals_inverted_range(self, engine):
        assert await engine.daily_totals(TODAY, TODAY - dt.timedelta(days=1)) == []

    async def test_spending_summary(self, engine):
        summary = await engine.spending_summary()
        assert summary.computed_on == TODAY
        assert summary.today == Decimal("400")
        assert summary.this_week == Decimal("400")
        assert summary.this_month == Decimal("430")


class TestReadIsolation:
    """Each aggregation call takes its own read of the store."""

    async def test_write_between_reads_is_visible_to_later_read(self, store, expense_data):
        """
        A write landing between the "today" and "week" reads shows up in
        the week total only, so the two numbers need not be consistent.
        """
        engine = AggregationEngine(store)
        await store.expenses.insert(expense_data(amount="100"))

        today_total = await engine.total_for(today_window(TODAY))
        await store.expenses.insert(expense_data(amount="25"))
        week_total = await engine.total_for(week_window(TODAY))

        assert today_total == Decimal("100")
        assert week_total == Decimal("125")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
