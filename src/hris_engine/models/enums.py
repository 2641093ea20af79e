"""Closed status vocabularies shared by models and services."""

from __future__ import annotations

from enum import Enum


class EmploymentStatus(str, Enum):
    ACTIVE = "Active"
    PROBATIONARY = "Probationary"
    TERMINATED = "Terminated"
    SUSPENDED = "Suspended"


PAYROLL_ELIGIBLE_STATUSES = frozenset({EmploymentStatus.ACTIVE, EmploymentStatus.PROBATIONARY})


class PayBasis(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


class ShiftType(str, Enum):
    DAY = "day"
    NIGHT = "night"


class VerificationStatus(str, Enum):
    VERIFIED = "Verified"
    OFF_SITE = "Off-site"
    PENDING = "Pending"
    FLAGGED = "Flagged"


class OvertimeStatus(str, Enum):
    NONE = "None"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class OvertimeCategory(str, Enum):
    REGULAR = "Regular"
    REST_DAY = "RestDay"
    HOLIDAY = "Holiday"


class HolidayType(str, Enum):
    REGULAR = "Regular"
    SPECIAL_NON_WORKING = "Special Non-Working"
    SPECIAL_WORKING = "Special Working"


class AccrualMode(str, Enum):
    ANNUAL = "Annual"
    MONTHLY = "Monthly"


class LeaveStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


class CashAdvanceStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DISBURSED = "Disbursed"
    FULLY_PAID = "Fully_Paid"
    REJECTED = "Rejected"


class PeriodStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class PayrollStatus(str, Enum):
    DRAFT = "Draft"
    APPROVED = "Approved"
    RELEASED = "Released"
