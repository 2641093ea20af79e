"""Leave requests, approvals, and allocation balances."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hris_engine.attendance.civil_time import CivilClock, SystemClock
from hris_engine.calculators.payroll import count_work_days
from hris_engine.exceptions import NotFoundError, StateConflictError, ValidationError
from hris_engine.models import (
    AccrualMode,
    Employee,
    LeaveAllocation,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def accrued_days(
    allocation: LeaveAllocation,
    leave_type: LeaveType,
    hire_date: date | None,
    as_of: date,
) -> Decimal:
    """Days earned on an allocation as of a date.

    Annual types grant the full allocation up front. Monthly types earn
    days_per_year / 12 for each completed month of the allocation year,
    counted from the hire month for employees hired that year.
    """
    allocated = Decimal(allocation.allocated_days)
    if leave_type.accrual_mode == AccrualMode.ANNUAL:
        return allocated
    if as_of.year < allocation.year:
        return ZERO
    if as_of.year > allocation.year:
        return allocated

    start_month = 1
    if hire_date is not None and hire_date.year == allocation.year:
        start_month = hire_date.month
    completed = max(0, as_of.month - start_month)
    earned = Decimal(leave_type.days_per_year) / 12 * completed
    return min(earned, allocated).quantize(Decimal("0.01"))


class LeaveService:
    """Submits and decides leave requests, keeping allocations in step."""

    def __init__(self, session: AsyncSession, clock: CivilClock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    async def submit_request(
        self,
        employee_id: int,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        total_days: Decimal | None = None,
        reason: str | None = None,
    ) -> LeaveRequest:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        if await self.session.get(LeaveType, leave_type_id) is None:
            raise NotFoundError("LeaveType", leave_type_id)
        if end_date < start_date:
            raise ValidationError("Leave end date precedes start date")

        if total_days is None:
            total_days = Decimal(count_work_days(start_date, end_date, employee.work_day_set))
        if total_days <= 0:
            raise ValidationError("Leave request covers no working days")

        overlapping = await self.session.execute(
            select(LeaveRequest.request_id).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_([LeaveStatus.PENDING, LeaveStatus.APPROVED]),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
        )
        if overlapping.first() is not None:
            raise ValidationError("Leave request overlaps an existing pending or approved request")

        allocation = await self._find_allocation(employee_id, leave_type_id, start_date.year)
        request = LeaveRequest(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            allocation_id=allocation.allocation_id if allocation else None,
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            status=LeaveStatus.PENDING,
            reason=reason,
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def approve_request(
        self, request_id: int, actor_id: int, override: bool = False
    ) -> LeaveRequest:
        """Approve a Pending request and charge its allocation.

        ``override`` lets an administrator approve beyond the remaining
        balance; the allocation is then flagged as overdrawn.
        """
        request = await self._get_request(request_id)
        if request.status != LeaveStatus.PENDING:
            raise StateConflictError(
                f"Leave request {request_id} is {request.status.value}, not Pending"
            )

        allocation = request.allocation or await self._find_allocation(
            request.employee_id, request.leave_type_id, request.start_date.year
        )
        if allocation is None and request.leave_type.is_paid:
            raise ValidationError(
                f"No {request.leave_type.name} allocation for {request.start_date.year}"
            )

        if allocation is not None:
            employee = await self.session.get(Employee, request.employee_id)
            earned = accrued_days(
                allocation, request.leave_type, employee.hire_date, request.start_date
            )
            available = earned - Decimal(allocation.used_days)
            days = Decimal(request.total_days)
            if days > available:
                if not override:
                    raise ValidationError(
                        f"Insufficient leave balance: {available} available, {days} requested"
                    )
                allocation.overdrawn = True
                logger.warning(
                    "Leave request %s approved beyond balance by %s", request_id, actor_id
                )
            allocation.used_days = Decimal(allocation.used_days) + days
            request.allocation = allocation

        request.status = LeaveStatus.APPROVED
        request.decided_by = actor_id
        request.decided_at = self.clock.now()
        await self.session.flush()
        return request

    async def reject_request(self, request_id: int, actor_id: int) -> LeaveRequest:
        request = await self._get_request(request_id)
        if request.status != LeaveStatus.PENDING:
            raise StateConflictError(
                f"Leave request {request_id} is {request.status.value}, not Pending"
            )
        request.status = LeaveStatus.REJECTED
        request.decided_by = actor_id
        request.decided_at = self.clock.now()
        await self.session.flush()
        return request

    async def cancel_request(self, request_id: int, actor_id: int) -> LeaveRequest:
        """Cancel a Pending or Approved request, restoring charged days."""
        request = await self._get_request(request_id)
        if request.status not in (LeaveStatus.PENDING, LeaveStatus.APPROVED):
            raise StateConflictError(
                f"Leave request {request_id} is {request.status.value} and cannot be cancelled"
            )
        if request.status == LeaveStatus.APPROVED and request.allocation is not None:
            allocation = request.allocation
            allocation.used_days = max(
                ZERO, Decimal(allocation.used_days) - Decimal(request.total_days)
            )
        request.status = LeaveStatus.CANCELLED
        request.decided_by = actor_id
        request.decided_at = self.clock.now()
        await self.session.flush()
        return request

    async def _get_request(self, request_id: int) -> LeaveRequest:
        result = await self.session.execute(
            select(LeaveRequest)
            .where(LeaveRequest.request_id == request_id)
            .options(
                selectinload(LeaveRequest.leave_type),
                selectinload(LeaveRequest.allocation),
            )
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError("LeaveRequest", request_id)
        return request

    async def _find_allocation(
        self, employee_id: int, leave_type_id: int, year: int
    ) -> LeaveAllocation | None:
        result = await self.session.execute(
            select(LeaveAllocation).where(
                LeaveAllocation.employee_id == employee_id,
                LeaveAllocation.leave_type_id == leave_type_id,
                LeaveAllocation.year == year,
            )
        )
        return result.scalar_one_or_none()
