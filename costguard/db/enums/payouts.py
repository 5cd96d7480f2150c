"""Payout lifecycle enums."""

from enum import Enum


class PayoutStatus(str, Enum):
    """
    Delivery-agent payout states.

    Normal path: PENDING -> INTENT_MARKED -> APPROVED | REJECTED.
    PENDING payouts left untouched past the cutoff become AUTO_REVERTED.
    ON_HOLD / UNDER_INVESTIGATION are side states that release back to PENDING.
    """

    PENDING = "pending"
    INTENT_MARKED = "intent_marked"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_REVERTED = "auto_reverted"
    ON_HOLD = "on_hold"
    UNDER_INVESTIGATION = "under_investigation"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PAYOUT_STATUSES

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


TERMINAL_PAYOUT_STATUSES = frozenset(
    {PayoutStatus.APPROVED, PayoutStatus.REJECTED, PayoutStatus.AUTO_REVERTED}
)


class PayoutAction(str, Enum):
    """Actions recorded in payout_action_logs."""

    INTENT_MARKED = "intent_marked"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_REVERTED = "auto_reverted"
    ON_HOLD = "on_hold"
    UNDER_INVESTIGATION = "under_investigation"
    RELEASED = "released"
    UNLOCKED = "unlocked"


# action -> (allowed source states, target state)
PAYOUT_TRANSITIONS: dict[PayoutAction, tuple[frozenset[PayoutStatus], PayoutStatus]] = {
    PayoutAction.INTENT_MARKED: (
        frozenset({PayoutStatus.PENDING}),
        PayoutStatus.INTENT_MARKED,
    ),
    PayoutAction.APPROVED: (
        frozenset({PayoutStatus.INTENT_MARKED}),
        PayoutStatus.APPROVED,
    ),
    PayoutAction.REJECTED: (
        frozenset({PayoutStatus.INTENT_MARKED}),
        PayoutStatus.REJECTED,
    ),
    PayoutAction.ON_HOLD: (
        frozenset({PayoutStatus.PENDING, PayoutStatus.INTENT_MARKED}),
        PayoutStatus.ON_HOLD,
    ),
    PayoutAction.UNDER_INVESTIGATION: (
        frozenset({PayoutStatus.PENDING, PayoutStatus.INTENT_MARKED, PayoutStatus.ON_HOLD}),
        PayoutStatus.UNDER_INVESTIGATION,
    ),
    PayoutAction.RELEASED: (
        frozenset({PayoutStatus.ON_HOLD, PayoutStatus.UNDER_INVESTIGATION}),
        PayoutStatus.PENDING,
    ),
    PayoutAction.UNLOCKED: (
        TERMINAL_PAYOUT_STATUSES,
        PayoutStatus.PENDING,
    ),
}


class CompliancePriority(str, Enum):
    """Severity of an ad hoc compliance escalation on an order."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
