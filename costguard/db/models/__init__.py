"""SQLAlchemy ORM models."""

from costguard.db.models.audit import SystemLog
from costguard.db.models.auth import User
from costguard.db.models.deductions import SalaryDeduction
from costguard.db.models.payouts import DeliveryAgent, Order, Payout, PayoutActionLog
from costguard.db.models.thresholds import (
    ApprovalDecision,
    EscalationRequest,
    ThresholdViolation,
)

__all__ = [
    "ApprovalDecision",
    "DeliveryAgent",
    "EscalationRequest",
    "Order",
    "Payout",
    "PayoutActionLog",
    "SalaryDeduction",
    "SystemLog",
    "ThresholdViolation",
    "User",
]
