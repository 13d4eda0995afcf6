"""Aggregation package: canonical windows and the aggregation engine."""

from ledger.queries.aggregation import (
    AggregationEngine,
    Dimension,
    dimension_key,
    top,
)
from ledger.queries.windows import (
    EARLIEST_DATE,
    WindowKind,
    custom_window,
    month_window,
    resolve_window,
    today_window,
    week_window,
    year_window,
)

__all__ = [
    "AggregationEngine",
    "Dimension",
    "dimension_key",
    "top",
    "EARLIEST_DATE",
    "WindowKind",
    "custom_window",
    "month_window",
    "resolve_window",
    "today_window",
    "week_window",
    "year_window",
]
