"""UTC helpers shared by models and services."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return the current aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps.

    SQLite drops tzinfo on round trip even for ``DateTime(timezone=True)``
    columns, so values read back must be normalised before comparing them with
    ``utcnow()``.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> int:
    """Return whole minutes elapsed between two timestamps, rounded."""
    delta: timedelta = as_utc(end) - as_utc(start)
    return round(delta.total_seconds() / 60)
