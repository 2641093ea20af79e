"""HRIS engine services."""

from hris_engine.services.aggregator import GenerationResult, PayrollAggregator
from hris_engine.services.cash_advance_ledger import CashAdvanceLedger, CashAdvanceStateMachine
from hris_engine.services.leave_service import LeaveService
from hris_engine.services.payroll_service import PayrollRecordService
from hris_engine.services.period_service import PayrollPeriodService
from hris_engine.services.state_machine import InvalidTransitionError, PayrollStateMachine

__all__ = [
    "CashAdvanceLedger",
    "CashAdvanceStateMachine",
    "GenerationResult",
    "InvalidTransitionError",
    "LeaveService",
    "PayrollAggregator",
    "PayrollPeriodService",
    "PayrollRecordService",
    "PayrollStateMachine",
]
