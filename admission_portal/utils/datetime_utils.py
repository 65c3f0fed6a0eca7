from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Naive datetimes are assumed to already be in UTC, which is how SQLite
    hands them back.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def age_in_years(since: datetime, now: Optional[datetime] = None) -> float:
    """Age of a timestamp in 365-day years."""
    now = to_utc(now) if now else utc_now()
    return (now - to_utc(since)).total_seconds() / (365 * 24 * 60 * 60)
