"""Cash advance ledger: lifecycle and per-cutoff amortization."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hris_engine.exceptions import NotFoundError, StateConflictError, ValidationError
from hris_engine.models import CashAdvance, CashAdvanceStatus, Employee

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class CashAdvanceStateMachine:
    """Allowed cash advance status transitions.

    Rejected and Fully_Paid are terminal. Fully_Paid is reached only through
    payroll approval.
    """

    VALID_TRANSITIONS: dict[CashAdvanceStatus, list[CashAdvanceStatus]] = {
        CashAdvanceStatus.PENDING: [CashAdvanceStatus.APPROVED, CashAdvanceStatus.REJECTED],
        CashAdvanceStatus.APPROVED: [CashAdvanceStatus.DISBURSED, CashAdvanceStatus.REJECTED],
        CashAdvanceStatus.DISBURSED: [CashAdvanceStatus.FULLY_PAID],
        CashAdvanceStatus.FULLY_PAID: [],
        CashAdvanceStatus.REJECTED: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(CashAdvanceStatus(from_status), [])
        return CashAdvanceStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise StateConflictError(
                f"Cash advance cannot move from '{CashAdvanceStatus(from_status).value}' "
                f"to '{CashAdvanceStatus(to_status).value}'"
            )


def installment_for(advance: CashAdvance) -> Decimal:
    """Amount to withhold this cutoff: min(agreed deduction, remaining)."""
    if advance.status != CashAdvanceStatus.DISBURSED:
        return ZERO
    remaining = Decimal(advance.remaining_balance)
    if remaining <= 0:
        return ZERO
    return min(Decimal(advance.deduction_per_cutoff), remaining)


class CashAdvanceLedger:
    """Service managing advances and their outstanding balances.

    Balances are only decremented through ``apply_installment``, which the
    payroll approval transaction calls.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_advance(self, advance_id: int) -> CashAdvance:
        advance = await self.session.get(CashAdvance, advance_id)
        if advance is None:
            raise NotFoundError("CashAdvance", advance_id)
        return advance

    async def request_advance(
        self,
        employee_id: int,
        amount: Decimal,
        deduction_per_cutoff: Decimal,
        reason: str | None = None,
    ) -> CashAdvance:
        """Create a Pending advance after validating its terms."""
        if await self.session.get(Employee, employee_id) is None:
            raise NotFoundError("Employee", employee_id)
        if amount <= 0:
            raise ValidationError("Advance amount must be positive")
        if deduction_per_cutoff <= 0:
            raise ValidationError("Per-cutoff deduction must be positive")
        if deduction_per_cutoff > amount:
            raise ValidationError("Per-cutoff deduction cannot exceed the advance amount")

        advance = CashAdvance(
            employee_id=employee_id,
            amount=amount,
            deduction_per_cutoff=deduction_per_cutoff,
            remaining_balance=ZERO,
            status=CashAdvanceStatus.PENDING,
            reason=reason,
        )
        self.session.add(advance)
        await self.session.flush()
        return advance

    async def approve(self, advance_id: int, approver_id: int, at: datetime) -> CashAdvance:
        advance = await self.get_advance(advance_id)
        CashAdvanceStateMachine.validate_transition(advance.status, CashAdvanceStatus.APPROVED)
        if advance.deduction_per_cutoff > advance.amount:
            raise ValidationError("Per-cutoff deduction cannot exceed the advance amount")
        advance.status = CashAdvanceStatus.APPROVED
        advance.approved_by = approver_id
        advance.approved_at = at
        await self.session.flush()
        return advance

    async def reject(self, advance_id: int, approver_id: int, at: datetime) -> CashAdvance:
        advance = await self.get_advance(advance_id)
        CashAdvanceStateMachine.validate_transition(advance.status, CashAdvanceStatus.REJECTED)
        advance.status = CashAdvanceStatus.REJECTED
        advance.approved_by = approver_id
        advance.approved_at = at
        await self.session.flush()
        return advance

    async def disburse(self, advance_id: int, at: datetime) -> CashAdvance:
        """Release funds; the full amount becomes the outstanding balance."""
        advance = await self.get_advance(advance_id)
        CashAdvanceStateMachine.validate_transition(advance.status, CashAdvanceStatus.DISBURSED)
        advance.status = CashAdvanceStatus.DISBURSED
        advance.remaining_balance = advance.amount
        advance.disbursed_at = at
        await self.session.flush()
        return advance

    async def apply_installment(self, advance_id: int, amount: Decimal) -> Decimal:
        """Decrement a Disbursed advance's balance; return the new balance.

        The decrement is a conditional update so that concurrent approvals
        can never drive a balance negative. A zero balance marks the advance
        Fully_Paid.
        """
        if amount <= 0:
            raise ValidationError("Installment must be positive")

        result = await self.session.execute(
            update(CashAdvance)
            .where(
                CashAdvance.advance_id == advance_id,
                CashAdvance.status == CashAdvanceStatus.DISBURSED,
                CashAdvance.remaining_balance >= amount,
            )
            .values(remaining_balance=CashAdvance.remaining_balance - amount)
        )
        if result.rowcount != 1:
            raise StateConflictError(
                f"Cash advance {advance_id} cannot absorb an installment of {amount}: "
                "not Disbursed or balance too low"
            )

        balance = (
            await self.session.execute(
                select(CashAdvance.remaining_balance).where(CashAdvance.advance_id == advance_id)
            )
        ).scalar_one()
        balance = Decimal(balance)

        if balance == 0:
            await self.session.execute(
                update(CashAdvance)
                .where(CashAdvance.advance_id == advance_id)
                .values(status=CashAdvanceStatus.FULLY_PAID)
            )
            logger.info("Cash advance %s fully paid", advance_id)
        return balance
