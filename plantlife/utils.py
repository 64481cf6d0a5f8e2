"""Datetime utilities for timezone-aware operations."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return current UTC time with timezone info.

    Replacement for the deprecated ``datetime.utcnow()``; the returned
    datetime is timezone-aware.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime object is timezone-aware and in UTC.

    If the datetime is naive (no tzinfo), it's assumed to be UTC.
    If the datetime has a different timezone, it's converted to UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


__all__ = [
    "ensure_utc",
    "utcnow",
]
