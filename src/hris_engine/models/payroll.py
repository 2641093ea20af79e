"""Payroll period and payroll record models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import get_history

from hris_engine.exceptions import StateConflictError
from hris_engine.models.base import Base, TimestampMixin, enum_type
from hris_engine.models.enums import PayrollStatus, PeriodStatus

if TYPE_CHECKING:
    from hris_engine.models.cash_advance import CashAdvanceDeduction
    from hris_engine.models.employee import Employee


class PayrollPeriod(Base, TimestampMixin):
    """Cutoff period with its pay date."""

    __tablename__ = "payroll_period"

    period_id: Mapped[int] = mapped_column(primary_key=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PeriodStatus] = mapped_column(
        enum_type(PeriodStatus), nullable=False, default=PeriodStatus.OPEN
    )

    __table_args__ = (
        UniqueConstraint("start_date", "end_date", name="payroll_period_dates_unique"),
        CheckConstraint("end_date >= start_date", name="payroll_period_date_order"),
        CheckConstraint("pay_date >= start_date", name="payroll_period_pay_date"),
    )

    records: Mapped[list[PayrollRecord]] = relationship(back_populates="period")

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class PayrollRecord(Base, TimestampMixin):
    """Computed pay for one employee in one period."""

    __tablename__ = "payroll_record"

    record_id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"), nullable=False
    )
    period_id: Mapped[int] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[PayrollStatus] = mapped_column(
        enum_type(PayrollStatus), nullable=False, default=PayrollStatus.DRAFT
    )

    # Inputs
    days_worked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    undertime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unpaid_leave_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)

    # Earnings
    basic_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    overtime_regular_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    overtime_rest_day_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    overtime_holiday_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    holiday_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    paid_leave_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    gross_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Deductions
    sss: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    philhealth: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pagibig: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    withholding_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cash_advance_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    late_undertime_deduction: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    unpaid_leave_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Lifecycle
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    released_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "period_id", name="payroll_record_employee_period_unique"),
    )

    employee: Mapped[Employee] = relationship()
    period: Mapped[PayrollPeriod] = relationship(back_populates="records")
    installments: Mapped[list[CashAdvanceDeduction]] = relationship(
        back_populates="payroll_record",
        cascade="all, delete-orphan",
    )

    @property
    def overtime_pay(self) -> Decimal:
        return self.overtime_regular_pay + self.overtime_rest_day_pay + self.overtime_holiday_pay

    def deduction_components(self) -> list[Decimal]:
        """All amounts subtracted from gross to reach net."""
        return [
            self.sss,
            self.philhealth,
            self.pagibig,
            self.withholding_tax,
            self.cash_advance_deduction,
            self.late_undertime_deduction,
            self.unpaid_leave_deduction,
            self.other_deductions,
        ]


def _persisted_status(record: PayrollRecord) -> PayrollStatus:
    """Status as last loaded from the database, ignoring pending changes."""
    history = get_history(record, "status")
    if history.deleted:
        return history.deleted[0]
    return record.status


@event.listens_for(PayrollRecord, "before_update")
def _refuse_frozen_update(mapper, connection, target: PayrollRecord) -> None:
    status = _persisted_status(target)
    if status != PayrollStatus.DRAFT:
        raise StateConflictError(
            f"Cannot modify payroll record {target.record_id} in status {status.value}"
        )


@event.listens_for(PayrollRecord, "before_delete")
def _refuse_frozen_delete(mapper, connection, target: PayrollRecord) -> None:
    status = _persisted_status(target)
    if status != PayrollStatus.DRAFT:
        raise StateConflictError(
            f"Cannot delete payroll record {target.record_id} in status {status.value}"
        )
