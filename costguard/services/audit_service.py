"""Audit trail writers for system_logs and payout_action_logs."""

from typing import Any

from sqlalchemy.orm import Session

from costguard.db.enums import LogLevel, PayoutAction, SystemLogType
from costguard.db.models import PayoutActionLog, SystemLog


def log_system_event(
    db: Session,
    log_type: SystemLogType,
    message: str,
    *,
    user_id: int | None = None,
    context: dict[str, Any] | None = None,
    level: LogLevel = LogLevel.INFO,
) -> SystemLog:
    """
    Add a system log entry to the session.

    Does not commit; the caller's transaction decides whether the entry
    persists together with the change it describes.

    Args:
        db: Database session
        log_type: Event type (from SystemLogType)
        message: Human-readable summary
        user_id: Acting user (None for system sweeps)
        context: Ids and amounts only (no free-form PII)
        level: Severity
    """
    entry = SystemLog(
        type=log_type.value,
        message=message,
        context=context,
        level=level.value,
        user_id=user_id,
    )
    db.add(entry)
    db.flush()
    return entry


def log_payout_action(
    db: Session,
    payout_id: int,
    action: PayoutAction,
    *,
    from_status: str | None = None,
    to_status: str | None = None,
    performed_by: int | None = None,
    role: str | None = None,
    note: str | None = None,
) -> PayoutActionLog:
    """Add a payout history row. Does not commit."""
    entry = PayoutActionLog(
        payout_id=payout_id,
        action=action.value,
        from_status=from_status,
        to_status=to_status,
        performed_by=performed_by,
        role=role,
        note=note,
    )
    db.add(entry)
    db.flush()
    return entry
