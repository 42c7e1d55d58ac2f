"""
Time helpers.

All timestamps are persisted as naive UTC datetimes so that values
read back from SQLite compare cleanly with freshly computed ones.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a datetime to naive UTC.

    Aware datetimes are converted to UTC; naive ones are assumed to be UTC already.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
