"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from hris_engine.models.enums import (
    OvertimeStatus,
    PayrollStatus,
    PeriodStatus,
    ShiftType,
    VerificationStatus,
)


class ErrorResponse(BaseModel):
    """Structured error body."""

    detail: str
    code: str


# ============================================================================
# Attendance schemas
# ============================================================================


class ClockInRequest(BaseModel):
    """Clock-in event with the device's location sample."""

    employee_id: int
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_meters: float | None = Field(default=None, ge=0)
    instant: datetime | None = None  # Server time when omitted


class ClockOutRequest(BaseModel):
    employee_id: int
    instant: datetime | None = None


class OvertimeDecisionRequest(BaseModel):
    approve: bool


class AttendanceFactResponse(BaseModel):
    """Schema for attendance fact response."""

    model_config = ConfigDict(from_attributes=True)

    fact_id: int
    employee_id: int
    site_id: int | None
    scheduled_shift_date: date
    time_in: datetime
    time_out: datetime | None
    shift_type: ShiftType
    verification_status: VerificationStatus
    distance_meters: float | None
    late_minutes: int
    late_deductible: bool
    undertime_minutes: int
    overtime_minutes: int
    ot_status: OvertimeStatus
    lunch_deduction_minutes: int
    total_worked_minutes: int | None
    is_overtime_session: bool


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollPeriodCreate(BaseModel):
    start_date: date
    end_date: date
    pay_date: date


class PayrollPeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period_id: int
    start_date: date
    end_date: date
    pay_date: date
    status: PeriodStatus


class InstallmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    advance_id: int
    amount: Decimal
    applied_at: datetime | None


class PayrollRecordResponse(BaseModel):
    """Schema for payroll record response."""

    model_config = ConfigDict(from_attributes=True)

    record_id: int
    employee_id: int
    period_id: int
    status: PayrollStatus
    days_worked: int
    daily_rate: Decimal
    late_minutes: int
    undertime_minutes: int
    overtime_minutes: int
    unpaid_leave_days: Decimal

    basic_pay: Decimal
    overtime_regular_pay: Decimal
    overtime_rest_day_pay: Decimal
    overtime_holiday_pay: Decimal
    holiday_pay: Decimal
    paid_leave_pay: Decimal
    gross_pay: Decimal

    sss: Decimal
    philhealth: Decimal
    pagibig: Decimal
    withholding_tax: Decimal
    cash_advance_deduction: Decimal
    late_undertime_deduction: Decimal
    unpaid_leave_deduction: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    approved_by: int | None = None
    approved_at: datetime | None = None
    released_by: int | None = None
    released_at: datetime | None = None
    notes: str | None = None
    installments: list[InstallmentResponse] = []


class PayrollRecordUpdate(BaseModel):
    notes: str | None = None
    other_deductions: Decimal | None = Field(default=None, ge=0)


class SkippedRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    record_id: int
    employee_id: int
    status: PayrollStatus


class GenerationResponse(BaseModel):
    """Schema for a payroll generation run."""

    period_id: int
    records: list[PayrollRecordResponse]
    skipped: list[SkippedRecordResponse]
    removed: list[int]
    total_gross: Decimal
    total_net: Decimal
