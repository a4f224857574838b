"""
Clock -- injectable time source.

Responsibility:
    Services, selectors and orchestrators never call ``datetime.now()``
    directly; they receive a Clock.  Ledger timestamps (``occurred_at``,
    ``payment_date``, hold expiry, referral expiry, reporting windows) all
    come from here.

Architecture position:
    Kernel > Domain -- pure, zero I/O except SystemClock.

Audit relevance:
    A DeterministicClock makes rolling-window summaries and referral expiry
    reproducible in tests and replays.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Starts at ``fixed_time`` (default 2024-01-15 12:00 UTC) and only moves
    when told to.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = as_utc(fixed_time or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._time

    def advance(self, seconds: int = 0, *, days: int = 0) -> datetime:
        self._time = self._time + timedelta(days=days, seconds=seconds)
        return self._time


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to aware UTC.

    SQLite returns naive datetimes for ``DateTime(timezone=True)`` columns;
    everything stored by the kernel is UTC, so naive values are read as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
