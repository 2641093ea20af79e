"""Cash advance and installment models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hris_engine.models.base import Base, TimestampMixin, enum_type
from hris_engine.models.enums import CashAdvanceStatus

if TYPE_CHECKING:
    from hris_engine.models.payroll import PayrollRecord


class CashAdvance(Base, TimestampMixin):
    """Salary advance repaid by per-cutoff payroll deductions."""

    __tablename__ = "cash_advance"

    advance_id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    deduction_per_cutoff: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[CashAdvanceStatus] = mapped_column(
        enum_type(CashAdvanceStatus), nullable=False, default=CashAdvanceStatus.PENDING
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    disbursed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="cash_advance_amount_positive"),
        CheckConstraint(
            "deduction_per_cutoff > 0 AND deduction_per_cutoff <= amount",
            name="cash_advance_deduction_range",
        ),
        CheckConstraint("remaining_balance >= 0", name="cash_advance_balance_nonneg"),
    )

    deductions: Mapped[list[CashAdvanceDeduction]] = relationship(back_populates="advance")


class CashAdvanceDeduction(Base, TimestampMixin):
    """Installment of an advance carried by a payroll record.

    Written while the record is Draft; applied_at is stamped when the
    record is approved and the advance balance is decremented.
    """

    __tablename__ = "cash_advance_deduction"

    deduction_id: Mapped[int] = mapped_column(primary_key=True)
    advance_id: Mapped[int] = mapped_column(
        ForeignKey("cash_advance.advance_id", ondelete="RESTRICT"), nullable=False
    )
    payroll_record_id: Mapped[int] = mapped_column(
        ForeignKey("payroll_record.record_id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("advance_id", "payroll_record_id", name="cash_advance_deduction_unique"),
        CheckConstraint("amount > 0", name="cash_advance_deduction_positive"),
    )

    advance: Mapped[CashAdvance] = relationship(back_populates="deductions")
    payroll_record: Mapped[PayrollRecord] = relationship(back_populates="installments")
