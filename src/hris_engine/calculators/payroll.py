"""Per-employee payroll fold over one period's batched inputs."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from hris_engine.calculators.contributions import (
    compute_pagibig,
    compute_philhealth,
    compute_sss,
    compute_withholding_tax,
    round_money,
)
from hris_engine.calculators.tables import (
    PAGIBIG,
    PHILHEALTH,
    SSS,
    WITHHOLDING_TAX,
    ContributionTableSet,
)
from hris_engine.config import PayrollConstants
from hris_engine.models import (
    AttendanceFact,
    HolidayType,
    LeaveRequest,
    OvertimeCategory,
    OvertimeStatus,
    VerificationStatus,
)

ZERO = Decimal("0")


@dataclass
class EmployeePayInputs:
    """Everything the fold needs for one employee, already batch-loaded."""

    employee_id: int
    daily_rate: Decimal
    work_days: frozenset[int]
    period_start: date
    period_end: date
    facts: list[AttendanceFact] = field(default_factory=list)
    leave_requests: list[LeaveRequest] = field(default_factory=list)
    installments: dict[int, Decimal] = field(default_factory=dict)  # advance_id -> amount
    holidays: dict[date, HolidayType] = field(default_factory=dict)
    other_deductions: Decimal = ZERO


@dataclass
class PayComputation:
    """Computed earnings and deductions for one employee."""

    employee_id: int
    daily_rate: Decimal
    days_worked: int = 0
    late_minutes: int = 0
    undertime_minutes: int = 0
    overtime_minutes: int = 0
    unpaid_leave_days: Decimal = ZERO

    basic_pay: Decimal = ZERO
    overtime_regular_pay: Decimal = ZERO
    overtime_rest_day_pay: Decimal = ZERO
    overtime_holiday_pay: Decimal = ZERO
    holiday_pay: Decimal = ZERO
    paid_leave_pay: Decimal = ZERO

    sss: Decimal = ZERO
    philhealth: Decimal = ZERO
    pagibig: Decimal = ZERO
    withholding_tax: Decimal = ZERO
    cash_advance_deduction: Decimal = ZERO
    late_undertime_deduction: Decimal = ZERO
    unpaid_leave_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO

    installments: dict[int, Decimal] = field(default_factory=dict)

    @property
    def overtime_pay(self) -> Decimal:
        return self.overtime_regular_pay + self.overtime_rest_day_pay + self.overtime_holiday_pay

    @property
    def gross_pay(self) -> Decimal:
        return self.basic_pay + self.overtime_pay + self.holiday_pay + self.paid_leave_pay

    @property
    def contributions(self) -> Decimal:
        return self.sss + self.philhealth + self.pagibig

    @property
    def total_deductions(self) -> Decimal:
        return (
            self.contributions
            + self.withholding_tax
            + self.cash_advance_deduction
            + self.late_undertime_deduction
            + self.unpaid_leave_deduction
            + self.other_deductions
        )

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions

    def record_values(self) -> dict[str, object]:
        """Column values for a PayrollRecord."""
        return {
            "daily_rate": self.daily_rate,
            "days_worked": self.days_worked,
            "late_minutes": self.late_minutes,
            "undertime_minutes": self.undertime_minutes,
            "overtime_minutes": self.overtime_minutes,
            "unpaid_leave_days": self.unpaid_leave_days,
            "basic_pay": self.basic_pay,
            "overtime_regular_pay": self.overtime_regular_pay,
            "overtime_rest_day_pay": self.overtime_rest_day_pay,
            "overtime_holiday_pay": self.overtime_holiday_pay,
            "holiday_pay": self.holiday_pay,
            "paid_leave_pay": self.paid_leave_pay,
            "gross_pay": self.gross_pay,
            "sss": self.sss,
            "philhealth": self.philhealth,
            "pagibig": self.pagibig,
            "withholding_tax": self.withholding_tax,
            "cash_advance_deduction": self.cash_advance_deduction,
            "late_undertime_deduction": self.late_undertime_deduction,
            "unpaid_leave_deduction": self.unpaid_leave_deduction,
            "other_deductions": self.other_deductions,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
        }


def is_qualifying(fact: AttendanceFact) -> bool:
    """A closed, verified, regular session counts toward days worked."""
    return (
        fact.time_out is not None
        and not fact.is_overtime_session
        and fact.verification_status == VerificationStatus.VERIFIED
    )


def overtime_category(
    shift_date: date, work_days: frozenset[int], holidays: dict[date, HolidayType]
) -> OvertimeCategory:
    if holidays.get(shift_date) == HolidayType.REGULAR:
        return OvertimeCategory.HOLIDAY
    if shift_date.isoweekday() not in work_days:
        return OvertimeCategory.REST_DAY
    return OvertimeCategory.REGULAR


def count_work_days(start: date, end: date, work_days: frozenset[int]) -> int:
    """Number of scheduled work days in [start, end]."""
    count = 0
    day = start
    while day <= end:
        if day.isoweekday() in work_days:
            count += 1
        day += timedelta(days=1)
    return count


def leave_days_in_period(
    request: LeaveRequest, start: date, end: date, work_days: frozenset[int]
) -> Decimal:
    """Scheduled work days a leave request covers inside [start, end].

    Capped by the request's own day count so half-day requests stay halves.
    """
    first = max(request.start_date, start)
    last = min(request.end_date, end)
    if first > last:
        return ZERO
    count = count_work_days(first, last, work_days)
    return min(Decimal(count), Decimal(request.total_days))


class PayrollCalculator:
    """Folds one employee's period inputs into a PayComputation.

    Calculation pipeline (stable order):
    1) Days worked and basic pay from qualifying attendance
    2) Holiday premium for days worked on declared holidays
    3) Approved overtime by category
    4) Paid leave (earning) and unpaid leave (deduction)
    5) Late/undertime deduction
    6) SSS, PhilHealth, Pag-IBIG on basic + overtime
    7) Withholding tax on gross less contributions
    8) Cash advance installments
    """

    def __init__(self, tables: ContributionTableSet, constants: PayrollConstants):
        self.tables = tables
        self.constants = constants

    def _multiplier(self, category: OvertimeCategory) -> Decimal:
        if category == OvertimeCategory.HOLIDAY:
            return self.constants.ot_multiplier_holiday
        if category == OvertimeCategory.REST_DAY:
            return self.constants.ot_multiplier_rest_day
        return self.constants.ot_multiplier_regular

    def _holiday_premium(self, holiday_type: HolidayType | None) -> Decimal:
        if holiday_type == HolidayType.REGULAR:
            return self.constants.ot_multiplier_holiday - 1
        if holiday_type == HolidayType.SPECIAL_NON_WORKING:
            return self.constants.special_holiday_premium
        return ZERO

    def calculate(self, inputs: EmployeePayInputs) -> PayComputation:
        daily = inputs.daily_rate
        hourly = daily / Decimal(self.constants.hours_per_day)
        result = PayComputation(employee_id=inputs.employee_id, daily_rate=daily)

        in_period = [
            f for f in inputs.facts
            if inputs.period_start <= f.scheduled_shift_date <= inputs.period_end
        ]
        qualifying = [f for f in in_period if is_qualifying(f)]

        # 1-2) Basic and holiday premium, one day per scheduled shift date
        worked_dates = sorted({f.scheduled_shift_date for f in qualifying})
        result.days_worked = len(worked_dates)
        result.basic_pay = round_money(daily * result.days_worked)
        premium = sum(
            (daily * self._holiday_premium(inputs.holidays.get(d)) for d in worked_dates),
            ZERO,
        )
        result.holiday_pay = round_money(premium)

        # 3) Overtime; only Approved overtime is payable
        ot_amounts: dict[OvertimeCategory, Decimal] = defaultdict(lambda: ZERO)
        for fact in in_period:
            if fact.time_out is None or fact.ot_status != OvertimeStatus.APPROVED:
                continue
            if fact.overtime_minutes <= 0:
                continue
            category = overtime_category(
                fact.scheduled_shift_date, inputs.work_days, inputs.holidays
            )
            result.overtime_minutes += fact.overtime_minutes
            ot_amounts[category] += (
                Decimal(fact.overtime_minutes) / 60 * hourly * self._multiplier(category)
            )
        result.overtime_regular_pay = round_money(ot_amounts[OvertimeCategory.REGULAR])
        result.overtime_rest_day_pay = round_money(ot_amounts[OvertimeCategory.REST_DAY])
        result.overtime_holiday_pay = round_money(ot_amounts[OvertimeCategory.HOLIDAY])

        # 4) Leave
        paid_days = ZERO
        unpaid_days = ZERO
        for request in inputs.leave_requests:
            days = leave_days_in_period(
                request, inputs.period_start, inputs.period_end, inputs.work_days
            )
            if request.leave_type.is_paid:
                paid_days += days
            else:
                unpaid_days += days
        result.unpaid_leave_days = unpaid_days
        result.paid_leave_pay = round_money(paid_days * daily)
        result.unpaid_leave_deduction = round_money(unpaid_days * daily)

        # 5) Late and undertime
        result.late_minutes = sum(f.late_minutes for f in qualifying if f.late_deductible)
        result.undertime_minutes = sum(f.undertime_minutes for f in qualifying)
        result.late_undertime_deduction = round_money(
            Decimal(result.late_minutes + result.undertime_minutes) * hourly / 60
        )

        # 6-7) Government deductions; nothing is due on zero compensation
        contribution_base = result.basic_pay + result.overtime_pay
        as_of = inputs.period_end
        if contribution_base > 0:
            result.sss = compute_sss(contribution_base, self.tables.for_date(SSS, as_of))
            result.philhealth = compute_philhealth(
                contribution_base, self.tables.for_date(PHILHEALTH, as_of)
            )
            result.pagibig = compute_pagibig(
                contribution_base, self.tables.for_date(PAGIBIG, as_of)
            )
        taxable = max(ZERO, result.gross_pay - result.contributions)
        if taxable > 0:
            result.withholding_tax = compute_withholding_tax(
                taxable, self.tables.for_date(WITHHOLDING_TAX, as_of)
            )

        # 8) Cash advances
        result.installments = {k: round_money(v) for k, v in inputs.installments.items() if v > 0}
        result.cash_advance_deduction = sum(result.installments.values(), ZERO)
        result.other_deductions = round_money(inputs.other_deductions)

        return result


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)
