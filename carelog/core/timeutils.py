"""UTC helpers shared by the ledger and the aggregator."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; everything the app stores is UTC, so naive means UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
