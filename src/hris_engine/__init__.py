"""Attendance verification and payroll computation engine."""

__version__ = "1.0.0"
