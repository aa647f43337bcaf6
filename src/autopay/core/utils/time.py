"""Shared UTC time helpers.

Provides ``utc_now`` plus ``SystemClock``, the default clock source handed to
the scheduler and pipeline, so every module reads the current instant the
same way.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SystemClock:
    """Clock source backed by the system wall clock."""

    def now(self) -> datetime:
        return utc_now()
