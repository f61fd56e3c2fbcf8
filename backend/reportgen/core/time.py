"""
Time helpers.

Stored timestamps are timezone-aware UTC. Rows written by older tooling may hold
naive datetimes; those are read as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_or_none(dt: datetime | None) -> str | None:
    """ISO-8601 rendering for JSON output."""
    normalized = ensure_utc(dt)
    return normalized.isoformat() if normalized is not None else None
