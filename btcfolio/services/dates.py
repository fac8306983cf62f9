"""
btcfolio/services/dates.py

Calendar helpers shared by the calculation services. Every calculation takes an
explicit `now`; `utc_now()` is only called once, at the public entry point,
when the caller does not supply one.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional

SECONDS_PER_DAY = 86400
DAYS_PER_YEAR = 365.25


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Naive datetimes are treated as UTC; aware ones are converted to UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now is not None else utc_now()


def months_ago(now: datetime, months: int) -> datetime:
    """
    Calendar month arithmetic. The day of month is clamped, so
    March 31 minus one month is February 28 (or 29).
    """
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def years_ago(now: datetime, years: int) -> datetime:
    return months_ago(now, years * 12)


def month_start(value: datetime) -> datetime:
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month_start(value: datetime) -> datetime:
    start = month_start(value)
    return months_ago(start, -1)


def start_of_year(now: datetime) -> datetime:
    return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from start to end (floored)."""
    return int((end - start).total_seconds() // SECONDS_PER_DAY)


def years_between(start: Optional[datetime], end: datetime) -> float:
    """
    Fractional years between two datetimes using 365.25-day years.
    Never returns less than 0.01.
    """
    if start is None:
        return 0.0
    years = (end - start).total_seconds() / (SECONDS_PER_DAY * DAYS_PER_YEAR)
    return max(0.01, years)


def end_of_month(value: date) -> date:
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def is_within_days(value: datetime, now: datetime, days: int) -> bool:
    return value >= now - timedelta(days=days)
