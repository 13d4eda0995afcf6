"""
Canonical Date Windows

All windows are closed intervals of calendar dates. Weeks start on Sunday.
"""

import calendar
import datetime as dt
from enum import Enum
from typing import Optional

from ledger.models.results import DateWindow


# "Beginning of time" for open-ended custom windows
EARLIEST_DATE = dt.date.min


class WindowKind(str, Enum):
    """Named windows a caller can ask for."""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"


def today_window(today: dt.date) -> DateWindow:
    return DateWindow(start=today, end=today)


def week_window(today: dt.date) -> DateWindow:
    """The Sunday-to-Saturday week containing ``today``."""
    # date.weekday(): Monday == 0 ... Sunday == 6
    days_since_sunday = (today.weekday() + 1) % 7
    start = today - dt.timedelta(days=days_since_sunday)
    return DateWindow(start=start, end=start + dt.timedelta(days=6))


def month_window(today: dt.date) -> DateWindow:
    """First through last calendar day of the month containing ``today``."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return DateWindow(
        start=today.replace(day=1),
        end=today.replace(day=last_day),
    )


def year_window(today: dt.date) -> DateWindow:
    return DateWindow(
        start=dt.date(today.year, 1, 1),
        end=dt.date(today.year, 12, 31),
    )


def custom_window(
    date_from: Optional[dt.date],
    date_to: Optional[dt.date],
    today: dt.date,
) -> DateWindow:
    """
    Caller-supplied inclusive range.
    
    ``date_to`` defaults to ``date_from``; ``date_from`` defaults to the
    beginning of time. With neither given the window runs up to ``today``.
    """
    if date_to is None:
        date_to = date_from if date_from is not None else today
    if date_from is None:
        date_from = EARLIEST_DATE
    return DateWindow(start=date_from, end=date_to)


def resolve_window(
    kind: WindowKind,
    today: dt.date,
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
) -> DateWindow:
    """Turn a named window into concrete bounds relative to ``today``."""
    if kind == WindowKind.TODAY:
        return today_window(today)
    elif kind == WindowKind.WEEK:
        return week_window(today)
    elif kind == WindowKind.MONTH:
        return month_window(today)
    elif kind == WindowKind.YEAR:
        return year_window(today)
    elif kind == WindowKind.CUSTOM:
        return custom_window(date_from, date_to, today)
    raise ValueError(f"Unknown window kind: {kind!r}")
