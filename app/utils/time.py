"""Utility functions for time handling.

All timestamps should be UTC and timezone-aware. Persisted timestamps use
the SQLite-friendly "YYYY-MM-DD HH:MM:SS" UTC form from sqlite_timestamp()
so they compare correctly as text.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    now = utc_now()
    if timespec:
        return now.isoformat(timespec=timespec)
    return now.isoformat()


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def sqlite_timestamp(dt: datetime) -> str:
    """Format a datetime for safe use with SQLite datetime() comparisons."""
    return ensure_utc(dt).strftime("%Y-%m-%d %H:%M:%S")


def coerce_datetime(value: Any) -> datetime | None:
    """
    Coerce value to datetime, returning None on failure.

    Args:
        value: String or datetime to coerce

    Returns:
        Datetime in timezone.utc or None if invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    return ensure_utc(parsed)


def minute_of_day(dt: datetime) -> int:
    """Minutes elapsed since midnight, seconds discarded."""
    return dt.hour * 60 + dt.minute
