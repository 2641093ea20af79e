"""ORM models."""

from hris_engine.models.attendance import AttendanceFact, Holiday
from hris_engine.models.base import Base, TimestampMixin
from hris_engine.models.cash_advance import CashAdvance, CashAdvanceDeduction
from hris_engine.models.employee import Employee, Site, SiteAssignment
from hris_engine.models.enums import (
    PAYROLL_ELIGIBLE_STATUSES,
    AccrualMode,
    CashAdvanceStatus,
    EmploymentStatus,
    HolidayType,
    LeaveStatus,
    OvertimeCategory,
    OvertimeStatus,
    PayBasis,
    PayrollStatus,
    PeriodStatus,
    ShiftType,
    VerificationStatus,
)
from hris_engine.models.leave import LeaveAllocation, LeaveRequest, LeaveType
from hris_engine.models.payroll import PayrollPeriod, PayrollRecord

__all__ = [
    "PAYROLL_ELIGIBLE_STATUSES",
    "AccrualMode",
    "AttendanceFact",
    "Base",
    "CashAdvance",
    "CashAdvanceDeduction",
    "CashAdvanceStatus",
    "Employee",
    "EmploymentStatus",
    "Holiday",
    "HolidayType",
    "LeaveAllocation",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveType",
    "OvertimeCategory",
    "OvertimeStatus",
    "PayBasis",
    "PayrollPeriod",
    "PayrollRecord",
    "PayrollStatus",
    "PeriodStatus",
    "ShiftType",
    "Site",
    "SiteAssignment",
    "TimestampMixin",
    "VerificationStatus",
]
