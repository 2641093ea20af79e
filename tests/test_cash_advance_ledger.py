"""Tests for the cash advance ledger."""

from datetime import datetime
from decimal import Decimal

import pytest

from hris_engine.exceptions import NotFoundError, StateConflictError, ValidationError
from hris_engine.models import CashAdvance, CashAdvanceStatus
from hris_engine.services.cash_advance_ledger import CashAdvanceLedger, installment_for

NOW = datetime(2025, 1, 6, 9, 0)


@pytest.fixture
def ledger(session) -> CashAdvanceLedger:
    return CashAdvanceLedger(session)


class TestInstallmentFor:
    def test_agreed_deduction_when_balance_allows(self):
        advance = CashAdvance(
            amount=Decimal("3000"),
            deduction_per_cutoff=Decimal("500"),
            remaining_balance=Decimal("3000"),
            status=CashAdvanceStatus.DISBURSED,
        )
        assert installment_for(advance) == Decimal("500")

    def test_capped_by_remaining_balance(self):
        advance = CashAdvance(
            amount=Decimal("1000"),
            deduction_per_cutoff=Decimal("500"),
            remaining_balance=Decimal("200"),
            status=CashAdvanceStatus.DISBURSED,
        )
        assert installment_for(advance) == Decimal("200")

    def test_zero_unless_disbursed(self):
        advance = CashAdvance(
            amount=Decimal("1000"),
            deduction_per_cutoff=Decimal("500"),
            remaining_balance=Decimal("1000"),
            status=CashAdvanceStatus.APPROVED,
        )
        assert installment_for(advance) == Decimal("0")


class TestLifecycle:
    async def test_request_approve_disburse(self, ledger, employee):
        advance = await ledger.request_advance(
            employee.employee_id, Decimal("3000"), Decimal("500"), reason="Medical"
        )
        assert advance.status == CashAdvanceStatus.PENDING
        assert advance.remaining_balance == Decimal("0")

        await ledger.approve(advance.advance_id, approver_id=42, at=NOW)
        assert advance.status == CashAdvanceStatus.APPROVED
        assert advance.approved_by == 42

        await ledger.disburse(advance.advance_id, at=NOW)
        assert advance.status == CashAdvanceStatus.DISBURSED
        assert advance.remaining_balance == Decimal("3000")
        assert advance.disbursed_at == NOW

    async def test_deduction_cannot_exceed_amount(self, ledger, employee):
        with pytest.raises(ValidationError):
            await ledger.request_advance(employee.employee_id, Decimal("500"), Decimal("600"))

    async def test_non_positive_amount(self, ledger, employee):
        with pytest.raises(ValidationError):
            await ledger.request_advance(employee.employee_id, Decimal("0"), Decimal("0"))

    async def test_unknown_employee(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.request_advance(999, Decimal("500"), Decimal("100"))

    async def test_cannot_disburse_pending(self, ledger, employee):
        advance = await ledger.request_advance(employee.employee_id, Decimal("500"), Decimal("100"))
        with pytest.raises(StateConflictError):
            await ledger.disburse(advance.advance_id, at=NOW)

    async def test_rejected_is_terminal(self, ledger, employee):
        advance = await ledger.request_advance(employee.employee_id, Decimal("500"), Decimal("100"))
        await ledger.reject(advance.advance_id, approver_id=42, at=NOW)
        assert advance.status == CashAdvanceStatus.REJECTED
        with pytest.raises(StateConflictError):
            await ledger.approve(advance.advance_id, approver_id=42, at=NOW)


class TestApplyInstallment:
    async def test_decrements_balance(self, ledger, employee, add_advance, session):
        advance = await add_advance(employee, Decimal("1000"), Decimal("300"))
        balance = await ledger.apply_installment(advance.advance_id, Decimal("300"))
        assert balance == Decimal("700")

        refreshed = await session.get(CashAdvance, advance.advance_id, populate_existing=True)
        assert refreshed.remaining_balance == Decimal("700")
        assert refreshed.status == CashAdvanceStatus.DISBURSED

    async def test_zero_balance_marks_fully_paid(self, ledger, employee, add_advance, session):
        advance = await add_advance(
            employee, Decimal("1000"), Decimal("500"), remaining_balance=Decimal("200")
        )
        balance = await ledger.apply_installment(advance.advance_id, Decimal("200"))
        assert balance == Decimal("0")

        refreshed = await session.get(CashAdvance, advance.advance_id, populate_existing=True)
        assert refreshed.status == CashAdvanceStatus.FULLY_PAID

    async def test_never_drives_balance_negative(self, ledger, employee, add_advance, session):
        advance = await add_advance(
            employee, Decimal("1000"), Decimal("500"), remaining_balance=Decimal("200")
        )
        with pytest.raises(StateConflictError):
            await ledger.apply_installment(advance.advance_id, Decimal("500"))

        refreshed = await session.get(CashAdvance, advance.advance_id, populate_existing=True)
        assert refreshed.remaining_balance == Decimal("200")

    async def test_requires_disbursed(self, ledger, employee, add_advance):
        advance = await add_advance(
            employee, Decimal("1000"), Decimal("500"), status=CashAdvanceStatus.APPROVED
        )
        with pytest.raises(StateConflictError):
            await ledger.apply_installment(advance.advance_id, Decimal("500"))

    async def test_positive_amount_required(self, ledger, employee, add_advance):
        advance = await add_advance(employee, Decimal("1000"), Decimal("500"))
        with pytest.raises(ValidationError):
            await ledger.apply_installment(advance.advance_id, Decimal("0"))
