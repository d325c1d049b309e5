"""UTC datetime helpers.

All timestamps in the service are timezone-aware UTC.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_days(value: datetime, days: int) -> datetime:
    """Calendar-day arithmetic in UTC (no DST drift)."""
    return ensure_utc(value) + timedelta(days=days)


def to_unix_millis(value: datetime) -> int:
    return int(ensure_utc(value).timestamp() * 1000)
