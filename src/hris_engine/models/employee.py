"""Employee, site, and site assignment models."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Numeric,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hris_engine.models.base import Base, TimestampMixin, enum_type
from hris_engine.models.enums import (
    PAYROLL_ELIGIBLE_STATUSES,
    EmploymentStatus,
    PayBasis,
)

if TYPE_CHECKING:
    from hris_engine.models.attendance import AttendanceFact


class Employee(Base, TimestampMixin):
    """Employee record with compensation basis and shift window."""

    __tablename__ = "employee"

    employee_id: Mapped[int] = mapped_column(primary_key=True)
    employee_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[EmploymentStatus] = mapped_column(
        enum_type(EmploymentStatus), nullable=False, default=EmploymentStatus.ACTIVE
    )
    pay_basis: Mapped[PayBasis] = mapped_column(
        enum_type(PayBasis), nullable=False, default=PayBasis.DAILY
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shift_start: Mapped[time] = mapped_column(Time, nullable=False, default=time(8, 0))
    shift_end: Mapped[time] = mapped_column(Time, nullable=False, default=time(17, 0))
    # ISO weekdays, Monday=1 .. Sunday=7
    work_days: Mapped[str] = mapped_column(String(16), nullable=False, default="1,2,3,4,5")
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (CheckConstraint("rate >= 0", name="employee_rate_nonneg"),)

    # Relationships
    site_assignments: Mapped[list[SiteAssignment]] = relationship(back_populates="employee")
    attendance_facts: Mapped[list[AttendanceFact]] = relationship(back_populates="employee")

    @property
    def work_day_set(self) -> frozenset[int]:
        """ISO weekday numbers the employee is scheduled to work."""
        return frozenset(int(d) for d in self.work_days.split(",") if d.strip())

    @property
    def is_payroll_eligible(self) -> bool:
        return self.status in PAYROLL_ELIGIBLE_STATUSES

    def daily_rate(self, working_days_per_month: int) -> Decimal:
        """Rate per working day; monthly rates are normalized, not rounded."""
        if self.pay_basis == PayBasis.MONTHLY:
            return Decimal(self.rate) / Decimal(working_days_per_month)
        return Decimal(self.rate)


class Site(Base, TimestampMixin):
    """Named location with a circular geofence."""

    __tablename__ = "site"

    site_id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    radius_meters: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("radius_meters > 0", name="site_radius_positive"),
        CheckConstraint("latitude BETWEEN -90 AND 90", name="site_latitude_range"),
        CheckConstraint("longitude BETWEEN -180 AND 180", name="site_longitude_range"),
    )

    assignments: Mapped[list[SiteAssignment]] = relationship(back_populates="site")


class SiteAssignment(Base, TimestampMixin):
    """Employee-to-site assignment; an employee may hold several at once."""

    __tablename__ = "site_assignment"

    assignment_id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"), nullable=False
    )
    site_id: Mapped[int] = mapped_column(
        ForeignKey("site.site_id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "site_id", "start_date", name="site_assignment_unique"),
    )

    employee: Mapped[Employee] = relationship(back_populates="site_assignments")
    site: Mapped[Site] = relationship(back_populates="assignments")

    def is_active_on(self, as_of_date: date) -> bool:
        """Check if assignment is active on a given date."""
        if not self.is_active or not self.site.is_active:
            return False
        if self.start_date > as_of_date:
            return False
        if self.end_date is not None and self.end_date < as_of_date:
            return False
        return True
