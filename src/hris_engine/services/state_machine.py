"""Payroll record state machine with transition validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hris_engine.exceptions import StateConflictError
from hris_engine.models.enums import PayrollStatus

if TYPE_CHECKING:
    from hris_engine.models import PayrollRecord


def _label(status: str) -> str:
    return status.value if isinstance(status, PayrollStatus) else str(status)


class InvalidTransitionError(StateConflictError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        msg = f"Invalid transition from '{_label(from_status)}' to '{_label(to_status)}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.transition_reason = reason

    def details(self) -> dict[str, str]:
        return {"from_status": _label(self.from_status), "to_status": _label(self.to_status)}


class PayrollStateMachine:
    """State machine for payroll record status transitions.

    Allowed transitions:
    - Draft → Approved (applies cash advance installments)
    - Approved → Released (record becomes immutable)

    Released is terminal. No state may be skipped.
    """

    VALID_TRANSITIONS: dict[PayrollStatus, list[PayrollStatus]] = {
        PayrollStatus.DRAFT: [PayrollStatus.APPROVED],
        PayrollStatus.APPROVED: [PayrollStatus.RELEASED],
        PayrollStatus.RELEASED: [],  # Terminal state
    }

    # Statuses where fields may still change
    MUTABLE = {PayrollStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(PayrollStatus(from_status), [])
        return PayrollStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_mutable(cls, status: str) -> bool:
        """Only Draft records may be regenerated, edited, or deleted."""
        return PayrollStatus(status) in cls.MUTABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS[PayrollStatus(status)]

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[PayrollStatus]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(PayrollStatus(current_status), [])

    @classmethod
    def ensure_mutable(cls, record: PayrollRecord, action: str) -> None:
        """Raise unless the record is still Draft."""
        if not cls.is_mutable(record.status):
            raise StateConflictError(
                f"Cannot {action} payroll record {record.record_id} in status "
                f"'{PayrollStatus(record.status).value}'"
            )
