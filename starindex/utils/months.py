"""Calendar month helpers for the month index."""

from datetime import datetime, timezone
from typing import List, Tuple

from starindex.models.index import MonthKey

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


def month_name(month: int) -> str:
    """Return the English month name, or "Unknown" outside 1-12"""
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return "Unknown"


def previous_month(key: MonthKey) -> MonthKey:
    if key.month == 1:
        return MonthKey(key.year - 1, 12)
    return MonthKey(key.year, key.month - 1)


def next_month(key: MonthKey) -> MonthKey:
    if key.month == 12:
        return MonthKey(key.year + 1, 1)
    return MonthKey(key.year, key.month + 1)


def months_descending(start: MonthKey, stop: MonthKey) -> List[MonthKey]:
    """List months from ``start`` back to ``stop``, both inclusive.

    Returns an empty list when ``stop`` is after ``start``.
    """
    months: List[MonthKey] = []
    current = start
    while current >= stop:
        months.append(current)
        current = previous_month(current)
    return months


def month_date_range(year: int, month: int) -> Tuple[datetime, datetime]:
    """First instant and last second of a month, in UTC.

    Args:
        year: Calendar year
        month: Month number (1-12)

    Returns:
        (since, until) pair suitable for a date filter
    """
    key = MonthKey.of(year, month)
    following = next_month(key)
    since = datetime(key.year, key.month, 1, tzinfo=timezone.utc)
    month_end = datetime(following.year, following.month, 1, tzinfo=timezone.utc)
    until = datetime.fromtimestamp(month_end.timestamp() - 1, tz=timezone.utc)
    return since, until


def parse_month_key(value: str) -> MonthKey:
    """Parse ``YYYY-MM`` (or ``YYYY-M``) into a MonthKey.

    Raises:
        ValueError: If the value is not a valid year-month
    """
    parts = value.strip().split("-")
    if len(parts) != 2:
        raise ValueError(f"Expected YYYY-MM, got {value!r}")
    try:
        year, month = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"Expected YYYY-MM, got {value!r}")
    return MonthKey.of(year, month)
