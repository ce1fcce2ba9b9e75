"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models store naive UTC).

Usage:
    from healthlog.core.datetime_utils import utc_now, get_cutoff, after_ms

    # Jobs become available one second from now
    available_at = after_ms(1000)

    # Finished jobs older than a day
    cutoff = get_cutoff(hours=24)
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def get_cutoff(hours: int = 0, days: int = 0, milliseconds: int = 0) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now
        milliseconds: Milliseconds to subtract from now

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    delta = timedelta(hours=hours, days=days, milliseconds=milliseconds)
    return utc_now() - delta


def after_ms(milliseconds: int, start: datetime | None = None) -> datetime:
    """Get the naive UTC datetime `milliseconds` after `start` (default: now)."""
    return (start or utc_now()) + timedelta(milliseconds=milliseconds)
