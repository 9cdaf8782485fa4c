"""
Time utilities for the Task Management API.

This module provides a single source of truth for time operations,
ensuring consistency across all endpoints and preventing clock drift issues.
"""

import calendar
from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive values are assumed to already be UTC (SQLite returns naive
    datetimes for timezone-aware columns).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_overdue(due_date: Optional[datetime], status: str) -> bool:
    """
    Check if a task is overdue.

    A task is overdue if it has a due date in the past and is not completed.

    Args:
        due_date: The task's due date
        status: The task's status value

    Returns:
        True if task is overdue, False otherwise
    """
    if not due_date or status == "completed":
        return False
    return ensure_utc(due_date) < utc_now()


def shift_months(value: datetime, months: int) -> datetime:
    """
    Move a datetime by a number of calendar months.

    The day is clamped to the length of the target month, so
    March 31 minus one month is the last day of February.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def range_start(period: str, now: Optional[datetime] = None) -> datetime:
    """
    Start of a reporting window ending now.

    Args:
        period: One of week, month, quarter, year

    Returns:
        timezone-aware datetime: now minus 7 days / 1 / 3 / 12 calendar months
    """
    now = now or utc_now()
    if period == "week":
        return now - timedelta(days=7)
    if period == "quarter":
        return shift_months(now, -3)
    if period == "year":
        return shift_months(now, -12)
    return shift_months(now, -1)


def day_bounds(day) -> tuple[datetime, datetime]:
    """
    Calculate the UTC bounds of a calendar day.

    Returns:
        Tuple of (start of day, start of next day) as timezone-aware datetimes
    """
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)
