"""Attendance fact and holiday models."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hris_engine.models.base import Base, TimestampMixin, enum_type
from hris_engine.models.enums import (
    HolidayType,
    OvertimeStatus,
    ShiftType,
    VerificationStatus,
)

if TYPE_CHECKING:
    from hris_engine.models.employee import Employee, Site


class AttendanceFact(Base, TimestampMixin):
    """A verified clock-in/clock-out pair.

    Open while time_out is null. At most one open fact per employee is
    enforced by the partial unique index below.
    """

    __tablename__ = "attendance_fact"

    fact_id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    site_id: Mapped[int | None] = mapped_column(
        ForeignKey("site.site_id", ondelete="SET NULL"), nullable=True
    )
    scheduled_shift_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_in: Mapped[datetime] = mapped_column(nullable=False)
    time_out: Mapped[datetime | None] = mapped_column(nullable=True)
    shift_type: Mapped[ShiftType] = mapped_column(enum_type(ShiftType), nullable=False)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        enum_type(VerificationStatus), nullable=False, default=VerificationStatus.VERIFIED
    )

    # Location sample at clock-in
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    accuracy_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance_meters: Mapped[float | None] = mapped_column(Float, nullable=True)

    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_deductible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    undertime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ot_status: Mapped[OvertimeStatus] = mapped_column(
        enum_type(OvertimeStatus), nullable=False, default=OvertimeStatus.NONE
    )
    lunch_deduction_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_worked_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_overtime_session: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    corrected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    correction_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index(
            "attendance_fact_one_open_per_employee",
            "employee_id",
            unique=True,
            postgresql_where=text("time_out IS NULL"),
            sqlite_where=text("time_out IS NULL"),
        ),
        Index("attendance_fact_employee_date", "employee_id", "scheduled_shift_date"),
        CheckConstraint("time_out IS NULL OR time_out >= time_in", name="attendance_time_order"),
        CheckConstraint("late_minutes >= 0", name="attendance_late_nonneg"),
        CheckConstraint("overtime_minutes >= 0", name="attendance_ot_nonneg"),
    )

    employee: Mapped[Employee] = relationship(back_populates="attendance_facts")
    site: Mapped[Site | None] = relationship()

    @property
    def is_open(self) -> bool:
        return self.time_out is None


class Holiday(Base, TimestampMixin):
    """Declared holiday affecting overtime category and holiday premium."""

    __tablename__ = "holiday"

    holiday_id: Mapped[int] = mapped_column(primary_key=True)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    holiday_type: Mapped[HolidayType] = mapped_column(enum_type(HolidayType), nullable=False)
