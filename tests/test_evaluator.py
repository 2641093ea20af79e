"""Tests for the attendance evaluator."""

from datetime import date, datetime, time

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hris_engine.attendance.civil_time import FixedClock
from hris_engine.attendance.evaluator import (
    AttendanceEvaluator,
    compute_clock_out_metrics,
    compute_lateness,
)
from hris_engine.attendance.geofence import GeoPoint
from hris_engine.config import PayrollConstants
from hris_engine.exceptions import (
    GeofenceRejection,
    NotFoundError,
    RejectionReason,
    StateConflictError,
    ValidationError,
)
from hris_engine.models import (
    AttendanceFact,
    OvertimeStatus,
    PayrollRecord,
    PayrollStatus,
    ShiftType,
    VerificationStatus,
)

MANILA_OFFICE = (14.5995, 120.9842)

AT_OFFICE = GeoPoint(*MANILA_OFFICE)
ONE_KM_NORTH = GeoPoint(MANILA_OFFICE[0] + 0.009, MANILA_OFFICE[1])


def at(hour: int, minute: int = 0, day: int = 6) -> datetime:
    return datetime(2025, 1, day, hour, minute)


class TestLateness:
    def test_on_time(self):
        assert compute_lateness(at(8), at(8), 15) == (0, False)

    def test_early_is_not_late(self):
        assert compute_lateness(at(7, 45), at(8), 15) == (0, False)

    def test_under_grace_is_recorded_but_not_deductible(self):
        assert compute_lateness(at(8, 14), at(8), 15) == (14, False)

    def test_grace_threshold_is_deductible(self):
        assert compute_lateness(at(8, 15), at(8), 15) == (15, True)


class TestClockOutMetrics:
    constants = PayrollConstants()

    def test_full_shift(self):
        metrics = compute_clock_out_metrics(at(8), at(17), 540, self.constants)
        assert metrics.gross_minutes == 540
        assert metrics.lunch_deduction_minutes == 60
        assert metrics.total_worked_minutes == 480
        assert metrics.overtime_minutes == 0
        assert metrics.undertime_minutes == 0
        assert metrics.ot_status == OvertimeStatus.NONE

    def test_overtime_measured_on_gross_span(self):
        metrics = compute_clock_out_metrics(at(8), at(19), 540, self.constants)
        assert metrics.overtime_minutes == 120
        assert metrics.total_worked_minutes == 600
        assert metrics.ot_status == OvertimeStatus.PENDING

    def test_short_span_has_no_lunch(self):
        metrics = compute_clock_out_metrics(at(8), at(12, 59), 540, self.constants)
        assert metrics.lunch_deduction_minutes == 0
        assert metrics.total_worked_minutes == 299
        assert metrics.undertime_minutes == 241

    def test_lunch_threshold_inclusive(self):
        metrics = compute_clock_out_metrics(at(8), at(13), 540, self.constants)
        assert metrics.lunch_deduction_minutes == 60
        assert metrics.total_worked_minutes == 240

    def test_overtime_session_counts_whole_span(self):
        metrics = compute_clock_out_metrics(
            at(18), at(20), 540, self.constants, is_overtime_session=True
        )
        assert metrics.overtime_minutes == 120
        assert metrics.undertime_minutes == 0

    def test_clock_out_before_clock_in_rejected(self):
        with pytest.raises(ValidationError):
            compute_clock_out_metrics(at(17), at(8), 540, self.constants)


class TestClockIn:
    @pytest.fixture
    def evaluator(self, session: AsyncSession, constants, clock) -> AttendanceEvaluator:
        return AttendanceEvaluator(session, constants=constants, clock=clock, utc_offset_hours=8)

    async def test_accepts_inside_geofence(self, evaluator, assigned_employee, site):
        fact = await evaluator.clock_in(
            assigned_employee.employee_id, AT_OFFICE, instant=at(8, 20), accuracy_meters=12.0
        )
        assert fact.fact_id is not None
        assert fact.site_id == site.site_id
        assert fact.time_out is None
        assert fact.shift_type == ShiftType.DAY
        assert fact.scheduled_shift_date == date(2025, 1, 6)
        assert fact.verification_status == VerificationStatus.VERIFIED
        assert fact.late_minutes == 20
        assert fact.late_deductible is True
        assert fact.is_overtime_session is False

    async def test_uses_clock_when_instant_omitted(self, evaluator, assigned_employee, clock):
        fact = await evaluator.clock_in(assigned_employee.employee_id, AT_OFFICE)
        assert fact.time_in == clock.now()
        assert fact.late_minutes == 0

    async def test_duplicate_open_fact_rejected(self, evaluator, assigned_employee):
        await evaluator.clock_in(assigned_employee.employee_id, AT_OFFICE, instant=at(8))
        with pytest.raises(StateConflictError) as exc_info:
            await evaluator.clock_in(assigned_employee.employee_id, AT_OFFICE, instant=at(8, 5))
        assert exc_info.value.reason == RejectionReason.DUPLICATE_OPEN_FACT

    async def test_no_assignment_rejected(self, evaluator, employee, session):
        with pytest.raises(ValidationError) as exc_info:
            await evaluator.clock_in(employee.employee_id, AT_OFFICE, instant=at(8))
        assert exc_info.value.reason == RejectionReason.NO_ACTIVE_ASSIGNMENT
        count = await session.scalar(select(func.count()).select_from(AttendanceFact))
        assert count == 0

    async def test_ended_assignment_rejected(self, evaluator, employee, site, assign):
        await assign(employee, site, end_date=date(2024, 12, 31))
        with pytest.raises(ValidationError) as exc_info:
            await evaluator.clock_in(employee.employee_id, AT_OFFICE, instant=at(8))
        assert exc_info.value.reason == RejectionReason.NO_ACTIVE_ASSIGNMENT

    async def test_outside_geofence_reports_distance(
        self, evaluator, assigned_employee, site, session
    ):
        with pytest.raises(GeofenceRejection) as exc_info:
            await evaluator.clock_in(assigned_employee.employee_id, ONE_KM_NORTH, instant=at(8))
        error = exc_info.value
        assert error.reason == RejectionReason.OUTSIDE_GEOFENCE
        assert error.nearest_site_id == site.site_id
        assert error.distance_meters == pytest.approx(1000.8, abs=1.0)
        assert error.details()["distance_meters"] == pytest.approx(1000.8, abs=1.0)
        count = await session.scalar(select(func.count()).select_from(AttendanceFact))
        assert count == 0

    async def test_unknown_employee(self, evaluator):
        with pytest.raises(NotFoundError):
            await evaluator.clock_in(999, AT_OFFICE, instant=at(8))

    async def test_night_shift_attributed_to_previous_day(
        self, evaluator, make_employee, site, assign
    ):
        employee = await make_employee(shift_start=time(22, 0), shift_end=time(6, 0))
        await assign(employee, site)
        fact = await evaluator.clock_in(employee.employee_id, AT_OFFICE, instant=at(2, 0, day=7))
        assert fact.shift_type == ShiftType.NIGHT
        assert fact.scheduled_shift_date == date(2025, 1, 6)
        assert fact.late_minutes == 240

    async def test_second_session_is_overtime(self, evaluator, assigned_employee):
        employee_id = assigned_employee.employee_id
        await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(8))
        await evaluator.clock_out(employee_id, instant=at(17))

        fact = await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(18))
        assert fact.is_overtime_session is True
        assert fact.late_minutes == 0

        closed = await evaluator.clock_out(employee_id, instant=at(20))
        assert closed.overtime_minutes == 120
        assert closed.undertime_minutes == 0
        assert closed.ot_status == OvertimeStatus.PENDING

    async def test_session_after_night_shift_extends_that_shift(
        self, evaluator, make_employee, site, assign
    ):
        employee = await make_employee(shift_start=time(22, 0), shift_end=time(6, 0))
        await assign(employee, site)
        employee_id = employee.employee_id

        await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(22, day=6))
        first = await evaluator.clock_out(employee_id, instant=at(6, day=7))
        assert first.scheduled_shift_date == date(2025, 1, 6)
        assert first.undertime_minutes == 0

        extra = await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(7, day=7))
        assert extra.is_overtime_session is True
        assert extra.scheduled_shift_date == date(2025, 1, 6)
        assert extra.shift_type == ShiftType.NIGHT
        assert extra.late_minutes == 0
        extra = await evaluator.clock_out(employee_id, instant=at(9, day=7))
        assert extra.overtime_minutes == 120
        assert extra.undertime_minutes == 0
        assert extra.ot_status == OvertimeStatus.PENDING

        second = await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(22, day=7))
        assert second.is_overtime_session is False
        assert second.scheduled_shift_date == date(2025, 1, 7)
        assert second.shift_type == ShiftType.NIGHT
        assert second.late_minutes == 0
        second = await evaluator.clock_out(employee_id, instant=at(6, day=8))
        assert second.overtime_minutes == 0
        assert second.undertime_minutes == 0
        assert second.total_worked_minutes == 420
        assert second.ot_status == OvertimeStatus.NONE

    async def test_early_clock_in_next_day_is_regular(self, evaluator, assigned_employee):
        employee_id = assigned_employee.employee_id
        await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(8))
        await evaluator.clock_out(employee_id, instant=at(17))

        fact = await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(7, day=7))
        assert fact.is_overtime_session is False
        assert fact.scheduled_shift_date == date(2025, 1, 7)
        assert fact.late_minutes == 0

    async def test_corrected_overtime_session_keeps_its_shift(
        self, evaluator, make_employee, site, assign
    ):
        employee = await make_employee(shift_start=time(22, 0), shift_end=time(6, 0))
        await assign(employee, site)
        employee_id = employee.employee_id
        await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(22, day=6))
        await evaluator.clock_out(employee_id, instant=at(6, day=7))
        extra = await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(7, day=7))
        await evaluator.clock_out(employee_id, instant=at(9, day=7))

        corrected = await evaluator.correct_fact(
            extra.fact_id, reason="Badge reader lag", time_in=at(6, 30, day=7)
        )
        assert corrected.scheduled_shift_date == date(2025, 1, 6)
        assert corrected.overtime_minutes == 150

    async def test_concurrent_insert_loses_on_unique_index(
        self, evaluator, assigned_employee, session, monkeypatch
    ):
        employee_id = assigned_employee.employee_id
        await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(8))
        await session.commit()

        # Simulate a racing request that passed the open-fact check
        async def no_open_fact(_employee_id):
            return None

        monkeypatch.setattr(evaluator, "_find_open_fact", no_open_fact)
        with pytest.raises(StateConflictError) as exc_info:
            await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(8, 1))
        assert exc_info.value.reason == RejectionReason.DUPLICATE_OPEN_FACT

        count = await session.scalar(
            select(func.count())
            .select_from(AttendanceFact)
            .where(AttendanceFact.employee_id == employee_id, AttendanceFact.time_out.is_(None))
        )
        assert count == 1


class TestClockOut:
    @pytest.fixture
    def evaluator(self, session: AsyncSession, constants, clock) -> AttendanceEvaluator:
        return AttendanceEvaluator(session, constants=constants, clock=clock, utc_offset_hours=8)

    async def test_closes_open_fact(self, evaluator, assigned_employee):
        employee_id = assigned_employee.employee_id
        opened = await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(8))
        closed = await evaluator.clock_out(employee_id, instant=at(19, 30))
        assert closed.fact_id == opened.fact_id
        assert closed.time_out == at(19, 30)
        assert closed.lunch_deduction_minutes == 60
        assert closed.total_worked_minutes == 630
        assert closed.overtime_minutes == 150
        assert closed.ot_status == OvertimeStatus.PENDING

    async def test_no_open_fact(self, evaluator, assigned_employee):
        with pytest.raises(StateConflictError) as exc_info:
            await evaluator.clock_out(assigned_employee.employee_id, instant=at(17))
        assert exc_info.value.reason == RejectionReason.NO_OPEN_FACT

    async def test_early_clock_out_records_undertime(self, evaluator, assigned_employee):
        employee_id = assigned_employee.employee_id
        await evaluator.clock_in(employee_id, AT_OFFICE, instant=at(8))
        closed = await evaluator.clock_out(employee_id, instant=at(16))
        assert closed.undertime_minutes == 60
        assert closed.overtime_minutes == 0
        assert closed.ot_status == OvertimeStatus.NONE


class TestOvertimeAndCorrections:
    @pytest.fixture
    def evaluator(self, session: AsyncSession, constants) -> AttendanceEvaluator:
        return AttendanceEvaluator(
            session, constants=constants, clock=FixedClock(at(21)), utc_offset_hours=8
        )

    async def test_approve_pending_overtime(self, evaluator, assigned_employee, add_fact):
        fact = await add_fact(
            assigned_employee,
            date(2025, 1, 6),
            time_out=time(19, 0),
            overtime_minutes=120,
            ot_status=OvertimeStatus.PENDING,
        )
        decided = await evaluator.decide_overtime(fact.fact_id, approve=True)
        assert decided.ot_status == OvertimeStatus.APPROVED

        with pytest.raises(StateConflictError):
            await evaluator.decide_overtime(fact.fact_id, approve=False)

    async def test_correction_recomputes_metrics(self, evaluator, assigned_employee, add_fact):
        fact = await add_fact(assigned_employee, date(2025, 1, 6))
        corrected = await evaluator.correct_fact(
            fact.fact_id, "Forgot to clock out after overtime", time_out=at(18)
        )
        assert corrected.overtime_minutes == 60
        assert corrected.ot_status == OvertimeStatus.PENDING
        assert corrected.correction_reason == "Forgot to clock out after overtime"
        assert corrected.corrected_at == at(21)

    async def test_correction_requires_reason(self, evaluator, assigned_employee, add_fact):
        fact = await add_fact(assigned_employee, date(2025, 1, 6))
        with pytest.raises(ValidationError):
            await evaluator.correct_fact(fact.fact_id, "", time_out=at(18))

    async def test_correction_refused_after_approval(
        self, evaluator, assigned_employee, add_fact, period, session
    ):
        fact = await add_fact(assigned_employee, date(2025, 1, 6))
        session.add(
            PayrollRecord(
                employee_id=assigned_employee.employee_id,
                period_id=period.period_id,
                status=PayrollStatus.APPROVED,
                daily_rate=assigned_employee.rate,
            )
        )
        await session.flush()

        with pytest.raises(StateConflictError):
            await evaluator.correct_fact(fact.fact_id, "Late badge", time_in=at(8, 30))
