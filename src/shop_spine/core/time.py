"""Time utilities with timezone-aware datetimes."""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """Get current UTC time as naive datetime (for DB compatibility).

    ``DateTime`` columns are declared without timezone, so every stored
    timestamp is a naive datetime representing UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def ago(days: int = 0, hours: int = 0, minutes: int = 0, seconds: int = 0) -> datetime:
    """Get a naive UTC datetime in the past relative to now."""
    return utc_now_naive() - timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
