"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from src.utils.datetime_utils import utc_now, add_days

    # Instead of datetime.utcnow()
    timestamp = utc_now()

    # Delivery deadline for a package
    deadline = add_days(utc_now(), package.delivery_days)

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def add_days(moment: datetime, days: int) -> datetime:
    """Return ``moment`` shifted forward by a whole number of days."""
    return moment + timedelta(days=days)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
