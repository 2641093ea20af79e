"""Payroll aggregator - generates Draft records for a period."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hris_engine.calculators.payroll import (
    EmployeePayInputs,
    PayrollCalculator,
    sum_money,
)
from hris_engine.calculators.tables import ContributionTableSet
from hris_engine.config import PayrollConstants, get_settings
from hris_engine.database import lock_payroll_period
from hris_engine.exceptions import NotFoundError, StateConflictError
from hris_engine.models import (
    PAYROLL_ELIGIBLE_STATUSES,
    AttendanceFact,
    CashAdvance,
    CashAdvanceDeduction,
    CashAdvanceStatus,
    Employee,
    Holiday,
    HolidayType,
    LeaveRequest,
    LeaveStatus,
    PayrollPeriod,
    PayrollRecord,
    PayrollStatus,
    PeriodStatus,
)
from hris_engine.services.cash_advance_ledger import installment_for
from hris_engine.services.state_machine import PayrollStateMachine

logger = logging.getLogger(__name__)


@dataclass
class SkippedRecord:
    """A record regeneration left untouched because it is past Draft."""

    record_id: int
    employee_id: int
    status: PayrollStatus


@dataclass
class GenerationResult:
    """Result of generating payroll for one period."""

    period_id: int
    records: list[PayrollRecord] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)  # stale Draft record ids

    @property
    def total_gross(self) -> Decimal:
        return sum_money(r.gross_pay for r in self.records)

    @property
    def total_net(self) -> Decimal:
        return sum_money(r.net_pay for r in self.records)


class PayrollAggregator:
    """Builds Draft payroll records for every payroll-eligible employee.

    All inputs are fetched in one batch per call, never per employee.
    Re-running replaces Draft values in place; Approved and Released
    records are reported as skipped and never written.
    """

    def __init__(
        self,
        session: AsyncSession,
        tables: ContributionTableSet,
        constants: PayrollConstants | None = None,
    ):
        self.session = session
        self.constants = constants or get_settings().payroll
        self.calculator = PayrollCalculator(tables, self.constants)

    async def generate(self, period_id: int) -> GenerationResult:
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise NotFoundError("PayrollPeriod", period_id)
        if period.status == PeriodStatus.CLOSED:
            raise StateConflictError(f"Payroll period {period_id} is closed")

        await lock_payroll_period(self.session, period_id)

        employees = await self._load_eligible_employees()
        employee_ids = [e.employee_id for e in employees]
        facts = await self._load_attendance(period, employee_ids)
        leave = await self._load_approved_leave(period, employee_ids)
        advances = await self._load_open_advances(employee_ids)
        pending = await self._load_pending_installments(period_id)
        holidays = await self._load_holidays(period)
        existing = await self._load_existing_records(period_id)

        result = GenerationResult(period_id=period_id)

        for employee in employees:
            record = existing.pop(employee.employee_id, None)
            if record is not None and not PayrollStateMachine.is_mutable(record.status):
                result.skipped.append(
                    SkippedRecord(record.record_id, employee.employee_id, record.status)
                )
                logger.warning(
                    "Skipping payroll record %s for employee %s: status %s",
                    record.record_id,
                    employee.employee_id,
                    PayrollStatus(record.status).value,
                )
                continue

            installments: dict[int, Decimal] = {}
            for advance in advances.get(employee.employee_id, []):
                amount = self._available_installment(advance, pending.get(advance.advance_id))
                if amount > 0:
                    installments[advance.advance_id] = amount

            inputs = EmployeePayInputs(
                employee_id=employee.employee_id,
                daily_rate=employee.daily_rate(self.constants.working_days_per_month),
                work_days=employee.work_day_set,
                period_start=period.start_date,
                period_end=period.end_date,
                facts=facts.get(employee.employee_id, []),
                leave_requests=leave.get(employee.employee_id, []),
                installments=installments,
                holidays=holidays,
                other_deductions=record.other_deductions if record is not None else Decimal("0"),
            )
            computation = self.calculator.calculate(inputs)
            if computation.net_pay < 0:
                logger.warning(
                    "Employee %s has negative net pay %s in period %s",
                    employee.employee_id,
                    computation.net_pay,
                    period_id,
                )

            if record is None:
                record = PayrollRecord(
                    employee_id=employee.employee_id,
                    period_id=period_id,
                    status=PayrollStatus.DRAFT,
                    installments=[],
                    **computation.record_values(),
                )
                self.session.add(record)
            else:
                for column, value in computation.record_values().items():
                    setattr(record, column, value)
            self._sync_installments(record, computation.installments)
            result.records.append(record)

        # Draft records of employees no longer eligible
        for record in existing.values():
            if PayrollStateMachine.is_mutable(record.status):
                result.removed.append(record.record_id)
                await self.session.delete(record)
            else:
                result.skipped.append(
                    SkippedRecord(record.record_id, record.employee_id, record.status)
                )

        await self.session.flush()
        logger.info(
            "Generated payroll for period %s: %d records, %d skipped, %d removed",
            period_id,
            len(result.records),
            len(result.skipped),
            len(result.removed),
        )
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _available_installment(advance: CashAdvance, pending: Decimal | None) -> Decimal:
        """Installment net of amounts already reserved by other Draft periods."""
        amount = installment_for(advance)
        if pending:
            headroom = Decimal(advance.remaining_balance) - pending
            amount = max(Decimal("0"), min(amount, headroom))
        return amount

    @staticmethod
    def _sync_installments(record: PayrollRecord, amounts: dict[int, Decimal]) -> None:
        """Update installment rows in place so unique keys never collide."""
        current = {row.advance_id: row for row in record.installments}
        for advance_id, row in current.items():
            if advance_id not in amounts:
                record.installments.remove(row)
        for advance_id, amount in amounts.items():
            if advance_id in current:
                current[advance_id].amount = amount
            else:
                record.installments.append(
                    CashAdvanceDeduction(advance_id=advance_id, amount=amount)
                )

    async def _load_eligible_employees(self) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.status.in_(list(PAYROLL_ELIGIBLE_STATUSES)))
            .order_by(Employee.employee_id)
        )
        return list(result.scalars().all())

    async def _load_attendance(
        self, period: PayrollPeriod, employee_ids: list[int]
    ) -> dict[int, list[AttendanceFact]]:
        result = await self.session.execute(
            select(AttendanceFact).where(
                AttendanceFact.employee_id.in_(employee_ids),
                AttendanceFact.scheduled_shift_date >= period.start_date,
                AttendanceFact.scheduled_shift_date <= period.end_date,
            )
        )
        grouped: dict[int, list[AttendanceFact]] = defaultdict(list)
        for fact in result.scalars().all():
            grouped[fact.employee_id].append(fact)
        return grouped

    async def _load_approved_leave(
        self, period: PayrollPeriod, employee_ids: list[int]
    ) -> dict[int, list[LeaveRequest]]:
        result = await self.session.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id.in_(employee_ids),
                LeaveRequest.status == LeaveStatus.APPROVED,
                LeaveRequest.start_date <= period.end_date,
                LeaveRequest.end_date >= period.start_date,
            )
            .options(selectinload(LeaveRequest.leave_type))
        )
        grouped: dict[int, list[LeaveRequest]] = defaultdict(list)
        for request in result.scalars().all():
            grouped[request.employee_id].append(request)
        return grouped

    async def _load_open_advances(self, employee_ids: list[int]) -> dict[int, list[CashAdvance]]:
        result = await self.session.execute(
            select(CashAdvance)
            .where(
                CashAdvance.employee_id.in_(employee_ids),
                CashAdvance.status == CashAdvanceStatus.DISBURSED,
                CashAdvance.remaining_balance > 0,
            )
            .order_by(CashAdvance.advance_id)
        )
        grouped: dict[int, list[CashAdvance]] = defaultdict(list)
        for advance in result.scalars().all():
            grouped[advance.employee_id].append(advance)
        return grouped

    async def _load_pending_installments(self, period_id: int) -> dict[int, Decimal]:
        """Unapplied installments already reserved by other periods' Drafts."""
        result = await self.session.execute(
            select(CashAdvanceDeduction.advance_id, CashAdvanceDeduction.amount)
            .join(PayrollRecord, PayrollRecord.record_id == CashAdvanceDeduction.payroll_record_id)
            .where(
                CashAdvanceDeduction.applied_at.is_(None),
                PayrollRecord.period_id != period_id,
            )
        )
        pending: dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
        for advance_id, amount in result.all():
            pending[advance_id] += Decimal(amount)
        return pending

    async def _load_holidays(self, period: PayrollPeriod) -> dict[date, HolidayType]:
        result = await self.session.execute(
            select(Holiday).where(
                Holiday.holiday_date >= period.start_date,
                Holiday.holiday_date <= period.end_date,
            )
        )
        return {h.holiday_date: h.holiday_type for h in result.scalars().all()}

    async def _load_existing_records(self, period_id: int) -> dict[int, PayrollRecord]:
        result = await self.session.execute(
            select(PayrollRecord)
            .where(PayrollRecord.period_id == period_id)
            .options(selectinload(PayrollRecord.installments))
            .with_for_update()
        )
        return {r.employee_id: r for r in result.scalars().all()}
