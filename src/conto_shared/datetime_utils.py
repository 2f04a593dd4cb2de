"""
Datetime utilities.

Timestamps are stored as naive UTC; pricing works on the restaurant's local
wall-clock.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are assumed to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_timestamp(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def to_local(value: datetime, tz_name: str | None) -> datetime:
    """Convert an instant to the wall-clock time of the given IANA zone."""
    if not tz_name:
        return as_utc(value)
    return as_utc(value).astimezone(ZoneInfo(tz_name))
