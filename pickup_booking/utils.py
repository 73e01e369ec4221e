"""Shared time helpers used across the booking core."""

import re
from datetime import date, datetime, timezone

HHMM_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_hhmm(value: str) -> bool:
    """Return True for a zero-padded 24-hour ``HH:MM`` string.

    Examples:
        >>> is_valid_hhmm("09:30")
        True
        >>> is_valid_hhmm("9:30")
        False
    """
    return bool(HHMM_PATTERN.match(value))


def hhmm_to_minutes(value: str) -> int:
    """Convert ``HH:MM`` to minutes after midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def day_of_week(day: date) -> int:
    """Weekday index with 0 = Sunday through 6 = Saturday."""
    return day.isoweekday() % 7


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calendar_date(value: datetime | date) -> date:
    """Calendar date used for slot matching."""
    if isinstance(value, datetime):
        return value.date()
    return value


def describe_minutes(minutes: int) -> str:
    """Short human duration for messages.

    Examples:
        >>> describe_minutes(60)
        '1 hour'
        >>> describe_minutes(90)
        '90 minutes'
    """
    if minutes and minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
