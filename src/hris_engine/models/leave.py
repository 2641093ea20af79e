"""Leave type, allocation, and request models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hris_engine.models.base import Base, TimestampMixin, enum_type
from hris_engine.models.enums import AccrualMode, LeaveStatus


class LeaveType(Base, TimestampMixin):
    """Leave category (vacation, sick, leave without pay, ...)."""

    __tablename__ = "leave_type"

    leave_type_id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    days_per_year: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    accrual_mode: Mapped[AccrualMode] = mapped_column(
        enum_type(AccrualMode), nullable=False, default=AccrualMode.ANNUAL
    )


class LeaveAllocation(Base, TimestampMixin):
    """Per-employee, per-year leave balance."""

    __tablename__ = "leave_allocation"

    allocation_id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    leave_type_id: Mapped[int] = mapped_column(
        ForeignKey("leave_type.leave_type_id", ondelete="RESTRICT"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    allocated_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    used_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    # Set when an administrator approves leave beyond the allocation
    overdrawn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="leave_allocation_unique"),
        CheckConstraint("allocated_days >= 0", name="leave_allocation_nonneg"),
        CheckConstraint("used_days >= 0", name="leave_used_nonneg"),
    )

    leave_type: Mapped[LeaveType] = relationship()

    @property
    def remaining_days(self) -> Decimal:
        return Decimal(self.allocated_days) - Decimal(self.used_days)


class LeaveRequest(Base, TimestampMixin):
    """Leave request; only Approved requests reach payroll."""

    __tablename__ = "leave_request"

    request_id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    leave_type_id: Mapped[int] = mapped_column(
        ForeignKey("leave_type.leave_type_id", ondelete="RESTRICT"), nullable=False
    )
    allocation_id: Mapped[int | None] = mapped_column(
        ForeignKey("leave_allocation.allocation_id", ondelete="SET NULL"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        enum_type(LeaveStatus), nullable=False, default=LeaveStatus.PENDING
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="leave_request_date_order"),
        CheckConstraint("total_days > 0", name="leave_request_days_positive"),
    )

    leave_type: Mapped[LeaveType] = relationship()
    allocation: Mapped[LeaveAllocation | None] = relationship()
