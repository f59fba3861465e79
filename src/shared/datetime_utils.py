"""Timezone-aware datetime utilities.

All datetime values use the UTC timezone for storage and comparison.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current datetime with UTC timezone.

    Always use this function instead of datetime.utcnow() or datetime.now().
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure datetime has UTC timezone.

    If datetime is naive (no timezone), assumes UTC and adds it.
    If datetime has different timezone, converts to UTC.

    Args:
        dt: Datetime to ensure is UTC

    Returns:
        Datetime with UTC timezone, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from start to end, tolerating naive datetimes."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 60.0


def datetime_to_iso(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def iso_to_datetime(iso_string: str | None) -> datetime | None:
    """Parse ISO 8601 string to datetime.

    Args:
        iso_string: ISO 8601 formatted string

    Returns:
        Datetime with UTC timezone, or None if input is None
    """
    if iso_string is None:
        return None

    dt = datetime.fromisoformat(iso_string.replace('Z', '+00:00'))
    return ensure_utc(dt)
