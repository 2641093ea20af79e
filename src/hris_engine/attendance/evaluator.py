"""Attendance evaluator: clock-in/clock-out acceptance and metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hris_engine.attendance.civil_time import CivilClock, SystemClock, minutes_between, to_civil
from hris_engine.attendance.geofence import GeoPoint, Geofence, match_geofences
from hris_engine.attendance.shift import ShiftWindow, classify_shift
from hris_engine.config import PayrollConstants, get_settings
from hris_engine.exceptions import (
    GeofenceRejection,
    NotFoundError,
    RejectionReason,
    StateConflictError,
    ValidationError,
)
from hris_engine.models import (
    AttendanceFact,
    Employee,
    OvertimeStatus,
    PayrollPeriod,
    PayrollRecord,
    PayrollStatus,
    Site,
    SiteAssignment,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClockOutMetrics:
    """Derived minute counts for a closed attendance fact."""

    gross_minutes: int
    lunch_deduction_minutes: int
    total_worked_minutes: int
    overtime_minutes: int
    undertime_minutes: int

    @property
    def ot_status(self) -> OvertimeStatus:
        return OvertimeStatus.PENDING if self.overtime_minutes > 0 else OvertimeStatus.NONE


def compute_lateness(
    clock_in: datetime, scheduled_start: datetime, grace_minutes: int
) -> tuple[int, bool]:
    """Return (late minutes, deductible flag).

    Lateness under the grace threshold is recorded but not deductible.
    """
    late = max(0, minutes_between(scheduled_start, clock_in))
    return late, late >= grace_minutes


def compute_clock_out_metrics(
    time_in: datetime,
    time_out: datetime,
    shift_duration_minutes: int,
    constants: PayrollConstants,
    is_overtime_session: bool = False,
) -> ClockOutMetrics:
    """Compute lunch, overtime and undertime for a clock span.

    Overtime and undertime are measured on the raw clock span, before the
    lunch deduction. An overtime session counts entirely as overtime.
    """
    if time_out < time_in:
        raise ValidationError("Clock-out precedes clock-in")

    gross = minutes_between(time_in, time_out)
    lunch = constants.lunch_deduction_minutes if gross >= constants.lunch_threshold_minutes else 0
    worked = max(0, gross - lunch)

    if is_overtime_session:
        overtime, undertime = gross, 0
    else:
        overtime = max(0, gross - shift_duration_minutes)
        undertime = max(0, shift_duration_minutes - gross)

    return ClockOutMetrics(
        gross_minutes=gross,
        lunch_deduction_minutes=lunch,
        total_worked_minutes=worked,
        overtime_minutes=overtime,
        undertime_minutes=undertime,
    )


class AttendanceEvaluator:
    """Accepts or rejects clock events and persists attendance facts.

    Clock-in checks, in order:
    1) no open fact for the employee
    2) at least one active site assignment
    3) location inside at least one assigned geofence

    Rejections never persist anything.
    """

    def __init__(
        self,
        session: AsyncSession,
        constants: PayrollConstants | None = None,
        clock: CivilClock | None = None,
        utc_offset_hours: int | None = None,
    ):
        settings = get_settings()
        self.session = session
        self.constants = constants or settings.payroll
        self.utc_offset_hours = (
            utc_offset_hours if utc_offset_hours is not None else settings.utc_offset_hours
        )
        self.clock = clock or SystemClock(self.utc_offset_hours)

    async def clock_in(
        self,
        employee_id: int,
        point: GeoPoint,
        instant: datetime | None = None,
        accuracy_meters: float | None = None,
    ) -> AttendanceFact:
        """Open a new attendance fact for the employee."""
        civil = to_civil(instant, self.utc_offset_hours) if instant else self.clock.now()
        if accuracy_meters is not None and accuracy_meters < 0:
            raise ValidationError("Location accuracy must be non-negative")

        employee = await self._get_employee(employee_id)

        if await self._find_open_fact(employee_id) is not None:
            logger.warning("Clock-in rejected for employee %s: open fact exists", employee_id)
            raise StateConflictError(
                "Employee already has an open attendance record",
                reason=RejectionReason.DUPLICATE_OPEN_FACT,
            )

        sites = await self.get_active_sites(employee_id, civil.date())
        if not sites:
            logger.warning("Clock-in rejected for employee %s: no active site", employee_id)
            raise ValidationError(
                "Employee has no active site assignment",
                reason=RejectionReason.NO_ACTIVE_ASSIGNMENT,
            )

        match = match_geofences(
            point,
            [
                Geofence(s.site_id, GeoPoint(s.latitude, s.longitude), s.radius_meters)
                for s in sites
            ],
        )
        if not match.within:
            logger.warning(
                "Clock-in rejected for employee %s: %.1f m from site %s",
                employee_id,
                match.distance_meters,
                match.site_id,
            )
            raise GeofenceRejection(match.distance_meters, match.site_id)

        window = ShiftWindow(employee.shift_start, employee.shift_end)
        shift = classify_shift(civil, window, self.constants.night_shift_day_boundary)
        anchor = await self._overtime_anchor(employee_id, civil, window)
        overtime_session = anchor is not None

        if overtime_session:
            late, deductible = 0, False
            shift_date, shift_type = anchor.scheduled_shift_date, anchor.shift_type
        else:
            late, deductible = compute_lateness(
                civil, shift.scheduled_start, self.constants.late_grace_minutes
            )
            shift_date, shift_type = shift.scheduled_shift_date, shift.shift_type

        fact = AttendanceFact(
            employee_id=employee_id,
            site_id=match.site_id,
            scheduled_shift_date=shift_date,
            time_in=civil,
            shift_type=shift_type,
            verification_status=VerificationStatus.VERIFIED,
            latitude=point.latitude,
            longitude=point.longitude,
            accuracy_meters=accuracy_meters,
            distance_meters=match.distance_meters,
            late_minutes=late,
            late_deductible=deductible,
            ot_status=OvertimeStatus.NONE,
            is_overtime_session=overtime_session,
        )
        self.session.add(fact)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent clock-in for the same employee
            await self.session.rollback()
            raise StateConflictError(
                "Employee already has an open attendance record",
                reason=RejectionReason.DUPLICATE_OPEN_FACT,
            ) from exc

        logger.info(
            "Clock-in accepted for employee %s at site %s (%s shift, date %s, late %s min)%s",
            employee_id,
            match.site_id,
            shift_type.value,
            shift_date,
            late,
            " as overtime session" if overtime_session else "",
        )
        return fact

    async def clock_out(
        self, employee_id: int, instant: datetime | None = None
    ) -> AttendanceFact:
        """Close the employee's open attendance fact."""
        civil = to_civil(instant, self.utc_offset_hours) if instant else self.clock.now()

        employee = await self._get_employee(employee_id)
        fact = await self._find_open_fact(employee_id)
        if fact is None:
            raise StateConflictError(
                "Employee has no open attendance record",
                reason=RejectionReason.NO_OPEN_FACT,
            )

        window = ShiftWindow(employee.shift_start, employee.shift_end)
        metrics = compute_clock_out_metrics(
            fact.time_in,
            civil,
            window.duration_minutes,
            self.constants,
            is_overtime_session=fact.is_overtime_session,
        )
        fact.time_out = civil
        self._apply_metrics(fact, metrics)
        await self.session.flush()

        logger.info(
            "Clock-out for employee %s: %s min worked, %s min overtime",
            employee_id,
            metrics.total_worked_minutes,
            metrics.overtime_minutes,
        )
        return fact

    async def decide_overtime(self, fact_id: int, approve: bool) -> AttendanceFact:
        """Approve or reject a fact's pending overtime."""
        fact = await self._get_fact(fact_id)
        if fact.ot_status != OvertimeStatus.PENDING:
            raise StateConflictError(
                f"Overtime on attendance {fact_id} is {fact.ot_status.value}, not Pending"
            )
        await self._ensure_not_locked(fact.employee_id, fact.scheduled_shift_date)

        fact.ot_status = OvertimeStatus.APPROVED if approve else OvertimeStatus.REJECTED
        await self.session.flush()
        return fact

    async def correct_fact(
        self,
        fact_id: int,
        reason: str,
        time_in: datetime | None = None,
        time_out: datetime | None = None,
    ) -> AttendanceFact:
        """Explicit correction of a fact's clock times.

        Recomputes every derived field. Refused once the covering payroll
        record has left Draft.
        """
        if not reason:
            raise ValidationError("A correction reason is required")
        if time_in is None and time_out is None:
            raise ValidationError("Nothing to correct")

        fact = await self._get_fact(fact_id)
        employee = await self._get_employee(fact.employee_id)
        await self._ensure_not_locked(fact.employee_id, fact.scheduled_shift_date)

        window = ShiftWindow(employee.shift_start, employee.shift_end)
        if time_in is not None:
            new_in = to_civil(time_in, self.utc_offset_hours)
            fact.time_in = new_in
            if fact.is_overtime_session:
                # Stays on the shift it extends
                fact.late_minutes, fact.late_deductible = 0, False
            else:
                shift = classify_shift(new_in, window, self.constants.night_shift_day_boundary)
                await self._ensure_not_locked(fact.employee_id, shift.scheduled_shift_date)
                fact.scheduled_shift_date = shift.scheduled_shift_date
                fact.shift_type = shift.shift_type
                fact.late_minutes, fact.late_deductible = compute_lateness(
                    new_in, shift.scheduled_start, self.constants.late_grace_minutes
                )
        if time_out is not None:
            fact.time_out = to_civil(time_out, self.utc_offset_hours)

        if fact.time_out is not None:
            metrics = compute_clock_out_metrics(
                fact.time_in,
                fact.time_out,
                window.duration_minutes,
                self.constants,
                is_overtime_session=fact.is_overtime_session,
            )
            self._apply_metrics(fact, metrics)

        fact.corrected_at = self.clock.now()
        fact.correction_reason = reason
        await self.session.flush()
        logger.info("Attendance %s corrected: %s", fact_id, reason)
        return fact

    async def get_active_sites(self, employee_id: int, as_of: date) -> list[Site]:
        """Sites the employee is actively assigned to on a date."""
        result = await self.session.execute(
            select(Site)
            .join(SiteAssignment, SiteAssignment.site_id == Site.site_id)
            .where(
                SiteAssignment.employee_id == employee_id,
                SiteAssignment.is_active.is_(True),
                Site.is_active.is_(True),
                SiteAssignment.start_date <= as_of,
                or_(SiteAssignment.end_date.is_(None), SiteAssignment.end_date >= as_of),
            )
            .order_by(Site.site_id)
        )
        return list(result.scalars().unique().all())

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _apply_metrics(fact: AttendanceFact, metrics: ClockOutMetrics) -> None:
        fact.lunch_deduction_minutes = metrics.lunch_deduction_minutes
        fact.total_worked_minutes = metrics.total_worked_minutes
        fact.overtime_minutes = metrics.overtime_minutes
        fact.undertime_minutes = metrics.undertime_minutes
        if metrics.overtime_minutes == 0:
            fact.ot_status = OvertimeStatus.NONE
        elif fact.ot_status == OvertimeStatus.NONE:
            fact.ot_status = OvertimeStatus.PENDING

    async def _get_employee(self, employee_id: int) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def _get_fact(self, fact_id: int) -> AttendanceFact:
        fact = await self.session.get(AttendanceFact, fact_id)
        if fact is None:
            raise NotFoundError("AttendanceFact", fact_id)
        return fact

    async def _find_open_fact(self, employee_id: int) -> AttendanceFact | None:
        result = await self.session.execute(
            select(AttendanceFact).where(
                AttendanceFact.employee_id == employee_id,
                AttendanceFact.time_out.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def _overtime_anchor(
        self, employee_id: int, civil: datetime, window: ShiftWindow
    ) -> AttendanceFact | None:
        """Closed regular fact that a clock-in extends as an overtime session.

        A clock-in after the latest regular shift was closed, and before the
        early clock-in lead of the next scheduled start, belongs to that shift.
        """
        result = await self.session.execute(
            select(AttendanceFact)
            .where(
                AttendanceFact.employee_id == employee_id,
                AttendanceFact.time_out.is_not(None),
                AttendanceFact.is_overtime_session.is_(False),
            )
            .order_by(AttendanceFact.time_out.desc())
            .limit(1)
        )
        latest = result.scalar_one_or_none()
        if latest is None or civil < latest.time_out:
            return None

        next_day = latest.scheduled_shift_date + timedelta(days=1)
        next_start = datetime.combine(next_day, window.start)
        if civil >= next_start - timedelta(minutes=self.constants.early_clock_in_minutes):
            return None
        return latest

    async def _ensure_not_locked(self, employee_id: int, shift_date: date) -> None:
        """Reject edits to attendance already paid out on a non-Draft record."""
        result = await self.session.execute(
            select(PayrollRecord.record_id)
            .join(PayrollPeriod, PayrollPeriod.period_id == PayrollRecord.period_id)
            .where(
                PayrollRecord.employee_id == employee_id,
                PayrollRecord.status != PayrollStatus.DRAFT,
                PayrollPeriod.start_date <= shift_date,
                PayrollPeriod.end_date >= shift_date,
            )
            .limit(1)
        )
        record_id = result.scalar_one_or_none()
        if record_id is not None:
            raise StateConflictError(
                f"Attendance on {shift_date} is covered by payroll record {record_id}, "
                "which is no longer Draft"
            )
