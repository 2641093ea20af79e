"""Fixed-offset civil time.

Every attendance instant is converted once, at the boundary, into a naive
``datetime`` holding wall-clock fields in UTC+8. All later arithmetic runs
on those naive values only; nothing here consults the host timezone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_UTC_OFFSET_HOURS = 8


def civil_zone(offset_hours: int = DEFAULT_UTC_OFFSET_HOURS) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def to_civil(instant: datetime, offset_hours: int = DEFAULT_UTC_OFFSET_HOURS) -> datetime:
    """Resolve an instant to naive civil time at the fixed offset.

    Aware datetimes are converted; naive datetimes are taken to already be
    civil time and returned unchanged.
    """
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(civil_zone(offset_hours)).replace(tzinfo=None)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, rounded down."""
    return int((end - start).total_seconds() // 60)


class CivilClock(ABC):
    """Injectable source of the current civil time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current naive civil time."""
        ...


class SystemClock(CivilClock):
    """Reads the system UTC clock and shifts it to the fixed offset."""

    def __init__(self, offset_hours: int = DEFAULT_UTC_OFFSET_HOURS):
        self.offset_hours = offset_hours

    def now(self) -> datetime:
        return to_civil(datetime.now(timezone.utc), self.offset_hours)


class FixedClock(CivilClock):
    """Clock pinned to a given civil time; used by tests and replays."""

    def __init__(self, fixed: datetime):
        self._fixed = fixed

    def now(self) -> datetime:
        return self._fixed

    def advance(self, minutes: int) -> None:
        self._fixed += timedelta(minutes=minutes)
