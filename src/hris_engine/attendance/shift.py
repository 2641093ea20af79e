"""Shift classification for clock-in events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from hris_engine.exceptions import ValidationError
from hris_engine.models.enums import ShiftType

DEFAULT_DAY_BOUNDARY = time(6, 0)


@dataclass(frozen=True)
class ShiftWindow:
    """Employee's scheduled wall-clock shift, with no date attached.

    A window whose end is earlier than its start runs overnight.
    """

    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start == self.end:
            raise ValidationError("Shift start and end must differ")

    @property
    def is_overnight(self) -> bool:
        return self.end < self.start

    @property
    def duration_minutes(self) -> int:
        start = self.start.hour * 60 + self.start.minute
        end = self.end.hour * 60 + self.end.minute
        if self.is_overnight:
            end += 24 * 60
        return end - start

    def contains(self, moment: time) -> bool:
        """Check if a wall-clock time falls inside the window (end exclusive)."""
        if self.is_overnight:
            return moment >= self.start or moment < self.end
        return self.start <= moment < self.end


@dataclass(frozen=True)
class ShiftClassification:
    """Where a clock-in belongs on the schedule."""

    shift_type: ShiftType
    scheduled_shift_date: date
    scheduled_start: datetime
    scheduled_end: datetime


def classify_shift(
    clock_in: datetime,
    window: ShiftWindow,
    day_boundary: time = DEFAULT_DAY_BOUNDARY,
) -> ShiftClassification:
    """Classify a civil-time clock-in against the employee's shift window.

    Night shifts are only possible for overnight windows. A night clock-in
    before the day boundary continues the shift that started the previous
    calendar day, so it is attributed to that day.
    """
    moment = clock_in.time()
    is_night = window.is_overnight and window.contains(moment)

    shift_date = clock_in.date()
    if is_night and moment < day_boundary:
        shift_date -= timedelta(days=1)

    scheduled_start = datetime.combine(shift_date, window.start)
    return ShiftClassification(
        shift_type=ShiftType.NIGHT if is_night else ShiftType.DAY,
        scheduled_shift_date=shift_date,
        scheduled_start=scheduled_start,
        scheduled_end=scheduled_start + timedelta(minutes=window.duration_minutes),
    )
