"""Time utilities for consistent timestamp and stay-date handling."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterator

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_day(value: date | datetime) -> date:
    """Strip time-of-day, keeping only the calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


def day_start(day: date) -> datetime:
    """Midnight UTC at the start of the given day."""
    return datetime.combine(as_day(day), time.min, tzinfo=timezone.utc)


def iter_nights(check_in: date, check_out: date) -> Iterator[date]:
    """Yield each night in [check_in, check_out)."""
    current = as_day(check_in)
    end = as_day(check_out)
    while current < end:
        yield current
        current += timedelta(days=1)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from start to end."""
    return (end - start).total_seconds() / 3600
