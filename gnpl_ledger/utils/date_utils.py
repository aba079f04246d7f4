"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta, timezone

ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def add_days(from_time: datetime, days: int) -> date:
    """Calendar date (UTC) that is `days` after `from_time`"""
    return (ensure_utc(from_time) + timedelta(days=days)).date()


def overdue_days(due_date: date | None, now: datetime) -> int:
    """Whole days elapsed since 00:00 UTC of the due date, never negative"""
    if due_date is None:
        return 0
    elapsed = ensure_utc(now) - start_of_day(due_date)
    return max(0, elapsed // ONE_DAY)


def days_until(due_date: date, today: date) -> int:
    """Signed calendar-day distance; negative once the due date has passed"""
    return (due_date - today).days
