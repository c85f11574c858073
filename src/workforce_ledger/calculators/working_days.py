"""Working day calendar (Monday to Friday)."""

from __future__ import annotations

import calendar
from datetime import date

SATURDAY = 5


def count_working_days(start: date, end: date) -> int:
    """Count Mon-Fri days in the inclusive range [start, end].

    Returns 0 for an empty range (end before start).
    """
    if end < start:
        return 0

    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * 5

    # Walk the partial week left after whole weeks
    weekday = start.weekday()
    for offset in range(remainder):
        if (weekday + offset) % 7 < SATURDAY:
            count += 1
    return count


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def working_days_in_month(year: int, month: int) -> int:
    """Mon-Fri days in a calendar month."""
    first, last = month_bounds(year, month)
    return count_working_days(first, last)


def clip_to_range(start: date, end: date, range_start: date, range_end: date) -> tuple[date, date] | None:
    """Intersect [start, end] with [range_start, range_end]; None when disjoint."""
    clipped_start = max(start, range_start)
    clipped_end = min(end, range_end)
    if clipped_end < clipped_start:
        return None
    return clipped_start, clipped_end
