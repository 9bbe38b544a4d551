"""
Standardized Date/Time Handling Utilities

Calendar-day logic (streak days, challenge cycles) is evaluated in the
configured local timezone.

CRITICAL RULES:
- Day keys are always "YYYY-MM-DD" strings in local time (use to_date_string())
- Naive datetimes are interpreted as local time
- Never mix naive and aware datetimes in comparisons
"""

import logging
from datetime import datetime, date, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from stretch_progress.config import TIMEZONE

logger = logging.getLogger(__name__)

DateLike = Union[datetime, date, str]


def get_timezone(tz_name: Optional[str] = None) -> ZoneInfo:
    """
    Get the local timezone, falling back to UTC on a bad name

    Args:
        tz_name: IANA zone name (defaults to TIMEZONE from config)
    """
    tz_str = tz_name or TIMEZONE
    try:
        return ZoneInfo(tz_str)
    except Exception as e:
        logger.error(f"Invalid timezone '{tz_str}': {e}")
        return ZoneInfo("UTC")


def now_local(tz: Optional[ZoneInfo] = None) -> datetime:
    """Current timezone-aware datetime in local time"""
    return datetime.now(tz or get_timezone())


def to_local(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Convert datetime to local time

    Naive datetimes are assumed to already be local.
    """
    tz = tz or get_timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp (accepts trailing 'Z')

    Raises:
        ValueError: If value is not ISO-8601
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def to_date_string(value: DateLike, tz: Optional[ZoneInfo] = None) -> str:
    """
    Normalize a date, datetime or string into a local "YYYY-MM-DD" key

    Examples:
        to_date_string(date(2024, 1, 3)) -> "2024-01-03"
        to_date_string("2024-01-03T23:30:00-05:00") -> local calendar day
    """
    if isinstance(value, datetime):
        return to_local(value, tz).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if len(value) == 10:
        return date.fromisoformat(value).isoformat()
    return to_local(parse_datetime(value), tz).date().isoformat()


def shift_date(date_str: str, days: int) -> str:
    """Move a "YYYY-MM-DD" key by a number of calendar days"""
    return (date.fromisoformat(date_str) + timedelta(days=days)).isoformat()


def yesterday_of(date_str: str) -> str:
    """Calendar day before date_str"""
    return shift_date(date_str, -1)


def days_ago(date_str: str, n: int) -> str:
    """Calendar day n days before date_str"""
    return shift_date(date_str, -n)


def start_of_day(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Local midnight at the start of dt's calendar day"""
    return to_local(dt, tz).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Last microsecond of dt's local calendar day"""
    return to_local(dt, tz).replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_week(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Local midnight of the most recent Sunday (weeks start on Sunday)"""
    local = start_of_day(dt, tz)
    days_since_sunday = (local.weekday() + 1) % 7
    return local - timedelta(days=days_since_sunday)


def start_of_month(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Local midnight on the first day of dt's month"""
    return start_of_day(dt, tz).replace(day=1)


def end_of_month(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """Last microsecond of dt's local month"""
    first = start_of_month(dt, tz)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return next_first - timedelta(microseconds=1)


# ==========================================
# Cycle boundaries
# ==========================================

def crossed_day_boundary(
    last_check: Optional[datetime],
    now: datetime,
    tz: Optional[ZoneInfo] = None
) -> bool:
    """True if the local calendar day changed since last_check (or never checked)"""
    if last_check is None:
        return True
    return to_date_string(last_check, tz) != to_date_string(now, tz)


def crossed_week_boundary(
    last_check: Optional[datetime],
    now: datetime,
    tz: Optional[ZoneInfo] = None
) -> bool:
    """True if a Sunday midnight lies between last_check and now"""
    if last_check is None:
        return True
    return to_local(last_check, tz) < start_of_week(now, tz)


def crossed_month_boundary(
    last_check: Optional[datetime],
    now: datetime,
    tz: Optional[ZoneInfo] = None
) -> bool:
    """True if the local (year, month) changed since last_check"""
    if last_check is None:
        return True
    last = to_local(last_check, tz)
    current = to_local(now, tz)
    return (last.year, last.month) != (current.year, current.month)


def end_date_for_category(category: str, now: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    End of the challenge window for a category, starting at now

    - daily: end of today
    - weekly: end of Saturday (last day before the next week starts)
    - monthly: end of the current month
    - special: end of the day two weeks from now
    - anything else: end of tomorrow
    """
    category = getattr(category, "value", category)
    if category == "daily":
        return end_of_day(now, tz)
    if category == "weekly":
        return end_of_day(start_of_week(now, tz) + timedelta(days=6), tz)
    if category == "monthly":
        return end_of_month(now, tz)
    if category == "special":
        return end_of_day(to_local(now, tz) + timedelta(days=14), tz)
    return end_of_day(to_local(now, tz) + timedelta(days=1), tz)
