"""
Domain time utilities (pure).

Centralized timestamp validation and conversion helpers.

Behavior and error messages must remain consistent across the domain model.
Persisted timestamps are ISO-8601 UTC strings; calendar dates (agenda dates,
last contact) are plain ISO `YYYY-MM-DD` strings so that lexicographic order
matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def to_iso_utc(dt: datetime, *, name: str = "timestamp") -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Accepts ISO-8601 strings (with or without a trailing 'Z'), datetimes and
    legacy epoch-millisecond numbers written by older clients.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    # Naive timestamps from the backend are interpreted as UTC.
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_date(dt: datetime) -> str:
    """Calendar date (UTC) of a timestamp as `YYYY-MM-DD`."""

    return dt.astimezone(timezone.utc).date().isoformat()
