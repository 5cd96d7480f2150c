"""Enum definitions for application constants."""

from costguard.db.enums.audit import LogLevel, SystemLogType
from costguard.db.enums.auth import Role
from costguard.db.enums.deductions import DeductionReason, DeductionStatus
from costguard.db.enums.payouts import (
    CompliancePriority,
    PAYOUT_TRANSITIONS,
    TERMINAL_PAYOUT_STATUSES,
    PayoutAction,
    PayoutStatus,
)
from costguard.db.enums.permissions import (
    ROLES_CAN_OPERATE,
    ROLES_CAN_SETTLE_DEDUCTIONS,
    ROLES_CAN_UNLOCK_PAYOUT,
)
from costguard.db.enums.thresholds import (
    CostType,
    Decision,
    EscalationPriority,
    EscalationStatus,
    ViolationStatus,
)

__all__ = [
    "CompliancePriority",
    "CostType",
    "Decision",
    "DeductionReason",
    "DeductionStatus",
    "EscalationPriority",
    "EscalationStatus",
    "LogLevel",
    "PAYOUT_TRANSITIONS",
    "PayoutAction",
    "PayoutStatus",
    "ROLES_CAN_OPERATE",
    "ROLES_CAN_SETTLE_DEDUCTIONS",
    "ROLES_CAN_UNLOCK_PAYOUT",
    "Role",
    "SystemLogType",
    "TERMINAL_PAYOUT_STATUSES",
    "ViolationStatus",
]
