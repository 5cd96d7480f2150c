"""Salary deduction enums."""

from enum import Enum


class DeductionReason(str, Enum):
    """Escalation outcome that produced the deduction."""

    REJECTED_ESCALATION = "rejected_escalation"
    EXPIRED_ESCALATION = "expired_escalation"


class DeductionStatus(str, Enum):
    """
    PENDING until the deduction date passes and payroll picks it up.

    PROCESSED and CANCELLED are terminal.
    """

    PENDING = "pending"
    PROCESSED = "processed"
    CANCELLED = "cancelled"
