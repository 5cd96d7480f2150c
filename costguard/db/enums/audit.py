"""Audit and system log enums."""

from enum import Enum


class SystemLogType(str, Enum):
    """Event types written to system_logs."""

    THRESHOLD_VIOLATION = "threshold_violation"
    ESCALATION_CREATED = "escalation_created"
    ESCALATION_DECIDED = "escalation_decided"
    ESCALATION_EXPIRED = "escalation_expired"
    PAYOUT_AUTO_REVERT = "payout_auto_revert"
    DA_REMINDER = "da_reminder"
    COMPLIANCE_ESCALATION = "compliance_escalation"
    SALARY_DEDUCTION_CREATED = "salary_deduction_created"
    SALARY_DEDUCTION_PROCESSED = "salary_deduction_processed"
    SALARY_DEDUCTION_CANCELLED = "salary_deduction_cancelled"


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
