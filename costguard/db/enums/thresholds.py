"""Threshold violation and escalation enums."""

from enum import Enum


class CostType(str, Enum):
    LOGISTICS = "logistics"
    EXPENSE = "expense"
    BONUS = "bonus"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class ViolationStatus(str, Enum):
    """
    Lifecycle of a threshold violation.

    BLOCKED is the only non-terminal state; it resolves exactly once.
    """

    BLOCKED = "blocked"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ViolationStatus.BLOCKED

    def can_transition_to(self, target: "ViolationStatus") -> bool:
        return target in _VIOLATION_TRANSITIONS[self]


_VIOLATION_TRANSITIONS = {
    ViolationStatus.BLOCKED: {ViolationStatus.APPROVED, ViolationStatus.REJECTED},
    ViolationStatus.APPROVED: set(),
    ViolationStatus.REJECTED: set(),
}


class EscalationStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not EscalationStatus.PENDING_APPROVAL

    def can_transition_to(self, target: "EscalationStatus") -> bool:
        return target in _ESCALATION_TRANSITIONS[self]


_ESCALATION_TRANSITIONS = {
    EscalationStatus.PENDING_APPROVAL: {
        EscalationStatus.APPROVED,
        EscalationStatus.REJECTED,
        EscalationStatus.EXPIRED,
    },
    EscalationStatus.APPROVED: set(),
    EscalationStatus.REJECTED: set(),
    EscalationStatus.EXPIRED: set(),
}


class EscalationPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"

    @property
    def rank(self) -> int:
        """Sort key, higher is more urgent."""
        return {"critical": 3, "high": 2, "medium": 1}[self.value]


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
