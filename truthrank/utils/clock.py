"""
Injectable time source.

Every time-dependent component (scoring, rate limiting, batch jobs, cache TTL)
takes a Clock so tests can pin "now" instead of patching datetime.
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone

SECONDS_PER_DAY = 86400


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from start to end, never negative."""
    elapsed = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))
