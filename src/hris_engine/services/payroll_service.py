"""Payroll record service - lifecycle transitions and Draft edits."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hris_engine.attendance.civil_time import CivilClock, SystemClock
from hris_engine.calculators.contributions import round_money
from hris_engine.exceptions import HRISError, NotFoundError, StateConflictError, ValidationError
from hris_engine.models import PayrollRecord, PayrollStatus
from hris_engine.services.cash_advance_ledger import CashAdvanceLedger
from hris_engine.services.state_machine import InvalidTransitionError, PayrollStateMachine

logger = logging.getLogger(__name__)


class PayrollRecordService:
    """Service for managing a payroll record's lifecycle.

    Operations:
    - approve: Draft → Approved, applying cash advance installments
    - release: Approved → Released, freezing the record
    - update_record / delete_record: Draft only

    Approval runs as one unit of work: either every installment is applied
    and the status changes, or the session is rolled back and nothing is.
    Callers own the commit.
    """

    def __init__(self, session: AsyncSession, clock: CivilClock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self.ledger = CashAdvanceLedger(session)

    async def get_record(self, record_id: int, for_update: bool = False) -> PayrollRecord:
        query = (
            select(PayrollRecord)
            .where(PayrollRecord.record_id == record_id)
            .options(selectinload(PayrollRecord.installments))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        record = (await self.session.execute(query)).scalar_one_or_none()
        if record is None:
            raise NotFoundError("PayrollRecord", record_id)
        return record

    async def approve(self, record_id: int, actor_id: int | None = None) -> PayrollRecord:
        """Approve a Draft record and apply its cash advance installments."""
        record = await self.get_record(record_id, for_update=True)
        PayrollStateMachine.validate_transition(record.status, PayrollStatus.APPROVED)

        now = self.clock.now()
        try:
            for installment in record.installments:
                balance = await self.ledger.apply_installment(
                    installment.advance_id, Decimal(installment.amount)
                )
                installment.applied_at = now
                logger.info(
                    "Applied installment %s to cash advance %s (balance %s)",
                    installment.amount,
                    installment.advance_id,
                    balance,
                )

            # Conditional update guards against a concurrent approval
            result = await self.session.execute(
                update(PayrollRecord)
                .where(
                    PayrollRecord.record_id == record_id,
                    PayrollRecord.status == PayrollStatus.DRAFT,
                )
                .values(
                    status=PayrollStatus.APPROVED,
                    approved_by=actor_id,
                    approved_at=now,
                )
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(
                    PayrollStatus.DRAFT,
                    PayrollStatus.APPROVED,
                    "record was changed by a concurrent request",
                )
            await self.session.flush()
        except HRISError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            logger.exception("Approval of payroll record %s failed", record_id)
            await self.session.rollback()
            raise StateConflictError(
                f"Approval of payroll record {record_id} failed and was rolled back"
            ) from exc

        logger.info("Payroll record %s approved by %s", record_id, actor_id)
        return await self.get_record(record_id)

    async def release(self, record_id: int, actor_id: int | None = None) -> PayrollRecord:
        """Release an Approved record; it is immutable afterwards."""
        record = await self.get_record(record_id, for_update=True)
        PayrollStateMachine.validate_transition(record.status, PayrollStatus.RELEASED)

        result = await self.session.execute(
            update(PayrollRecord)
            .where(
                PayrollRecord.record_id == record_id,
                PayrollRecord.status == PayrollStatus.APPROVED,
            )
            .values(
                status=PayrollStatus.RELEASED,
                released_by=actor_id,
                released_at=self.clock.now(),
            )
        )
        if result.rowcount != 1:
            raise InvalidTransitionError(
                PayrollStatus.APPROVED,
                PayrollStatus.RELEASED,
                "record was changed by a concurrent request",
            )
        logger.info("Payroll record %s released by %s", record_id, actor_id)
        return await self.get_record(record_id)

    async def update_record(
        self,
        record_id: int,
        notes: str | None = None,
        other_deductions: Decimal | None = None,
    ) -> PayrollRecord:
        """Edit manual fields of a Draft record and recompute its totals."""
        record = await self.get_record(record_id, for_update=True)
        PayrollStateMachine.ensure_mutable(record, "edit")

        if notes is not None:
            record.notes = notes
        if other_deductions is not None:
            if other_deductions < 0:
                raise ValidationError("Other deductions must be non-negative")
            record.other_deductions = round_money(other_deductions)
            record.total_deductions = sum(record.deduction_components(), Decimal("0"))
            record.net_pay = record.gross_pay - record.total_deductions
        await self.session.flush()
        return record

    async def delete_record(self, record_id: int) -> None:
        record = await self.get_record(record_id, for_update=True)
        PayrollStateMachine.ensure_mutable(record, "delete")
        await self.session.delete(record)
        await self.session.flush()
        logger.info("Payroll record %s deleted", record_id)
