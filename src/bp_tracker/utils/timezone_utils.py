"""
Timezone and datetime utilities.

Readings are stored as timezone-aware timestamps, but streaks, consistency
and "today" statistics are computed on local calendar days.
"""

from datetime import date, datetime

import pytz
from dateutil import parser


def make_timezone_aware(
    dt: datetime, timezone_str: str = "UTC", assume_local: bool = False
) -> datetime:
    """
    Make a datetime object timezone-aware.

    Args:
        dt: Datetime object (may be naive or aware).
        timezone_str: Timezone string (e.g., "Europe/Madrid").
        assume_local: If True and dt is naive, assume it's in timezone_str.

    Returns:
        Timezone-aware datetime object.
    """
    tz = pytz.timezone(timezone_str)

    if dt.tzinfo is None:
        if assume_local:
            return tz.localize(dt)
        else:
            return pytz.utc.localize(dt).astimezone(tz)
    else:
        return dt.astimezone(tz)


def parse_datetime(
    date_str: str, time_str: str | None = None, timezone_str: str = "UTC"
) -> datetime:
    """
    Parse date and optional time strings into timezone-aware datetime.

    Args:
        date_str: Date string (various formats supported).
        time_str: Optional time string.
        timezone_str: Timezone to assign to the parsed datetime.

    Returns:
        Timezone-aware datetime object.
    """
    combined = f"{date_str} {time_str}" if time_str else date_str

    dt = parser.parse(combined)

    return make_timezone_aware(dt, timezone_str, assume_local=True)


def local_date(dt: datetime, timezone_str: str = "UTC") -> date:
    """Return the calendar day of ``dt`` in the given timezone."""
    return make_timezone_aware(dt, timezone_str).date()


def local_today(timezone_str: str = "UTC") -> date:
    """Return today's date in the given timezone."""
    return datetime.now(pytz.timezone(timezone_str)).date()


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def to_epoch_millis(dt: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(dt.timestamp() * 1000)
