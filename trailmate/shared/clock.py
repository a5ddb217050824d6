"""
Time helpers.

All persisted timestamps are naive UTC so they compare cleanly with values
read back from SQLite and PostgreSQL ``timestamp without time zone`` columns.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
