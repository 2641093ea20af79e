"""Tests for leave requests and allocation balances."""

from datetime import date
from decimal import Decimal

import pytest

from hris_engine.exceptions import NotFoundError, StateConflictError, ValidationError
from hris_engine.models import AccrualMode, LeaveAllocation, LeaveStatus, LeaveType
from hris_engine.services.leave_service import LeaveService, accrued_days

MONDAY = date(2025, 1, 6)
WEDNESDAY = date(2025, 1, 8)


@pytest.fixture
def service(session, clock) -> LeaveService:
    return LeaveService(session, clock=clock)


@pytest.fixture
async def vacation(session) -> LeaveType:
    leave_type = LeaveType(
        name="Vacation Leave",
        days_per_year=Decimal("15"),
        is_paid=True,
        accrual_mode=AccrualMode.ANNUAL,
    )
    session.add(leave_type)
    await session.flush()
    return leave_type


@pytest.fixture
async def without_pay(session) -> LeaveType:
    leave_type = LeaveType(name="Leave Without Pay", is_paid=False)
    session.add(leave_type)
    await session.flush()
    return leave_type


@pytest.fixture
def allocate(session):
    async def _allocate(employee, leave_type, days, year=2025) -> LeaveAllocation:
        allocation = LeaveAllocation(
            employee_id=employee.employee_id,
            leave_type_id=leave_type.leave_type_id,
            year=year,
            allocated_days=Decimal(days),
            used_days=Decimal("0"),
        )
        session.add(allocation)
        await session.flush()
        return allocation

    return _allocate


class TestAccruedDays:
    def _monthly(self, per_year="12"):
        return LeaveType(
            name="Service Incentive Leave",
            days_per_year=Decimal(per_year),
            accrual_mode=AccrualMode.MONTHLY,
        )

    def test_annual_grants_everything(self):
        leave_type = LeaveType(
            name="VL", days_per_year=Decimal("15"), accrual_mode=AccrualMode.ANNUAL
        )
        allocation = LeaveAllocation(year=2025, allocated_days=Decimal("15"))
        assert accrued_days(allocation, leave_type, date(2023, 1, 1), date(2025, 1, 2)) == 15

    def test_monthly_counts_completed_months(self):
        allocation = LeaveAllocation(year=2025, allocated_days=Decimal("12"))
        earned = accrued_days(allocation, self._monthly(), date(2023, 1, 1), date(2025, 4, 15))
        assert earned == Decimal("3.00")

    def test_monthly_from_hire_month(self):
        allocation = LeaveAllocation(year=2025, allocated_days=Decimal("12"))
        earned = accrued_days(allocation, self._monthly(), date(2025, 2, 10), date(2025, 5, 1))
        assert earned == Decimal("3.00")

    def test_monthly_capped_by_allocation(self):
        allocation = LeaveAllocation(year=2025, allocated_days=Decimal("2"))
        earned = accrued_days(allocation, self._monthly(), None, date(2025, 12, 1))
        assert earned == Decimal("2")

    def test_other_years(self):
        allocation = LeaveAllocation(year=2025, allocated_days=Decimal("12"))
        assert accrued_days(allocation, self._monthly(), None, date(2024, 12, 31)) == 0
        assert accrued_days(allocation, self._monthly(), None, date(2026, 1, 1)) == 12


class TestSubmit:
    async def test_defaults_to_scheduled_work_days(self, service, employee, vacation):
        request = await service.submit_request(
            employee.employee_id, vacation.leave_type_id, date(2025, 1, 10), date(2025, 1, 13)
        )
        # Friday to Monday spans two work days
        assert request.total_days == Decimal("2")
        assert request.status == LeaveStatus.PENDING

    async def test_links_allocation(self, service, employee, vacation, allocate):
        allocation = await allocate(employee, vacation, "15")
        request = await service.submit_request(
            employee.employee_id, vacation.leave_type_id, date(2025, 1, 6), date(2025, 1, 6)
        )
        assert request.allocation_id == allocation.allocation_id

    async def test_weekend_only_rejected(self, service, employee, vacation):
        with pytest.raises(ValidationError):
            await service.submit_request(
                employee.employee_id, vacation.leave_type_id, date(2025, 1, 11), date(2025, 1, 12)
            )

    async def test_end_before_start_rejected(self, service, employee, vacation):
        with pytest.raises(ValidationError):
            await service.submit_request(
                employee.employee_id, vacation.leave_type_id, date(2025, 1, 10), date(2025, 1, 6)
            )

    async def test_unknown_employee(self, service, vacation):
        with pytest.raises(NotFoundError):
            await service.submit_request(
                999, vacation.leave_type_id, date(2025, 1, 6), date(2025, 1, 6)
            )

    async def test_overlap_rejected(self, service, employee, vacation):
        await service.submit_request(
            employee.employee_id, vacation.leave_type_id, date(2025, 1, 6), date(2025, 1, 8)
        )
        with pytest.raises(ValidationError):
            await service.submit_request(
                employee.employee_id, vacation.leave_type_id, date(2025, 1, 8), date(2025, 1, 9)
            )

    async def test_rejected_request_does_not_block(self, service, employee, vacation):
        first = await service.submit_request(
            employee.employee_id, vacation.leave_type_id, date(2025, 1, 6), date(2025, 1, 8)
        )
        await service.reject_request(first.request_id, actor_id=7)

        second = await service.submit_request(
            employee.employee_id, vacation.leave_type_id, date(2025, 1, 8), date(2025, 1, 9)
        )
        assert second.total_days == Decimal("2")


class TestDecisions:
    async def _submit(self, service, employee, leave_type, start, end):
        return await service.submit_request(
            employee.employee_id, leave_type.leave_type_id, start, end
        )

    async def test_approve_charges_allocation(self, service, employee, vacation, allocate, clock):
        allocation = await allocate(employee, vacation, "15")
        request = await self._submit(service, employee, vacation, MONDAY, WEDNESDAY)

        approved = await service.approve_request(request.request_id, actor_id=7)

        assert approved.status == LeaveStatus.APPROVED
        assert approved.decided_by == 7
        assert approved.decided_at == clock.now()
        assert allocation.used_days == Decimal("3")
        assert allocation.overdrawn is False

    async def test_insufficient_balance(self, service, employee, vacation, allocate):
        allocation = await allocate(employee, vacation, "2")
        request = await self._submit(service, employee, vacation, MONDAY, WEDNESDAY)

        with pytest.raises(ValidationError):
            await service.approve_request(request.request_id, actor_id=7)
        assert request.status == LeaveStatus.PENDING
        assert allocation.used_days == Decimal("0")

    async def test_override_marks_overdrawn(self, service, employee, vacation, allocate):
        allocation = await allocate(employee, vacation, "2")
        request = await self._submit(service, employee, vacation, MONDAY, WEDNESDAY)

        await service.approve_request(request.request_id, actor_id=7, override=True)

        assert allocation.used_days == Decimal("3")
        assert allocation.overdrawn is True

    async def test_monthly_accrual_limits_balance(self, session, service, employee, allocate):
        sil = LeaveType(
            name="Service Incentive Leave",
            days_per_year=Decimal("12"),
            accrual_mode=AccrualMode.MONTHLY,
        )
        session.add(sil)
        await session.flush()
        await allocate(employee, sil, "12")
        # One completed month by early February
        request = await self._submit(service, employee, sil, date(2025, 2, 3), date(2025, 2, 4))

        with pytest.raises(ValidationError):
            await service.approve_request(request.request_id, actor_id=7)

    async def test_paid_leave_requires_allocation(self, service, employee, vacation):
        request = await self._submit(service, employee, vacation, MONDAY, MONDAY)
        with pytest.raises(ValidationError):
            await service.approve_request(request.request_id, actor_id=7)

    async def test_unpaid_leave_without_allocation(self, service, employee, without_pay):
        request = await self._submit(
            service, employee, without_pay, date(2025, 1, 6), date(2025, 1, 7)
        )
        approved = await service.approve_request(request.request_id, actor_id=7)
        assert approved.status == LeaveStatus.APPROVED

    async def test_decided_request_is_final(self, service, employee, without_pay):
        request = await self._submit(
            service, employee, without_pay, date(2025, 1, 6), date(2025, 1, 6)
        )
        await service.reject_request(request.request_id, actor_id=7)

        with pytest.raises(StateConflictError):
            await service.approve_request(request.request_id, actor_id=7)
        with pytest.raises(StateConflictError):
            await service.cancel_request(request.request_id, actor_id=7)

    async def test_cancel_restores_days(self, service, employee, vacation, allocate):
        allocation = await allocate(employee, vacation, "15")
        request = await self._submit(service, employee, vacation, MONDAY, WEDNESDAY)
        await service.approve_request(request.request_id, actor_id=7)

        cancelled = await service.cancel_request(request.request_id, actor_id=7)

        assert cancelled.status == LeaveStatus.CANCELLED
        assert allocation.used_days == Decimal("0")

    async def test_unknown_request(self, service):
        with pytest.raises(NotFoundError):
            await service.reject_request(999, actor_id=7)
