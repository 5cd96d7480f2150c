"""Compliance reminders to delivery agents and ad hoc compliance escalations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from costguard.core.exceptions import NotFoundError
from costguard.db.enums import CompliancePriority, LogLevel, Role, SystemLogType
from costguard.db.models import DeliveryAgent, Order, Payout
from costguard.services import audit_service
from costguard.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_MESSAGE = "Please submit required documentation"


class OrderNotFound(NotFoundError):
    pass


@dataclass
class ReminderResult:
    target_date: date
    sent_notifications: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return len(self.sent_notifications)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def send_reminder(
    db: Session,
    agent_ids: list[int],
    *,
    message: str | None = None,
    target_date: date | None = None,
    actor_id: int | None = None,
) -> ReminderResult:
    """
    Record a compliance reminder for each delivery agent.

    Agents are handled independently: a missing agent or a failed write is
    reported in ``errors`` and the rest still receive their reminder.
    """
    message = message or DEFAULT_REMINDER_MESSAGE
    result = ReminderResult(target_date=target_date or utcnow().date())

    for agent_id in agent_ids:
        agent = db.get(DeliveryAgent, agent_id)
        if agent is None:
            result.errors.append({"delivery_agent_id": agent_id, "error": "Agent not found"})
            continue
        try:
            entry = audit_service.log_system_event(
                db,
                SystemLogType.DA_REMINDER,
                f"Reminder sent to {agent.da_code}: {message}",
                user_id=actor_id,
                context={
                    "delivery_agent_id": agent.id,
                    "da_code": agent.da_code,
                    "message": message,
                    "target_date": result.target_date.isoformat(),
                },
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception("Failed to record reminder for delivery agent %s", agent_id)
            result.errors.append({"delivery_agent_id": agent_id, "error": str(e)})
            continue

        result.sent_notifications.append(
            {
                "delivery_agent_id": agent.id,
                "da_code": agent.da_code,
                "name": agent.name,
                "log_id": entry.id,
                "sent_at": entry.created_at,
            }
        )

    logger.info(
        "Compliance reminders: sent=%s errors=%s target_date=%s",
        result.sent_count,
        result.error_count,
        result.target_date,
    )
    return result


def trigger_escalation(
    db: Session,
    order_id: int,
    *,
    reason: str,
    priority: CompliancePriority,
    actor_id: int | None = None,
    actor_role: Role | str | None = None,
) -> dict[str, Any]:
    """
    Raise an advisory compliance escalation on an order.

    Writes an audit entry only; it does not open a quorum escalation.
    Critical priority is logged at critical severity, everything else at
    warning.
    """
    row = db.execute(
        select(Order, Payout)
        .outerjoin(Payout, Payout.order_id == Order.id)
        .where(Order.id == order_id)
        .order_by(Payout.id.desc())
        .limit(1)
    ).first()
    if row is None:
        raise OrderNotFound("Order not found")
    order, payout = row

    critical = priority is CompliancePriority.CRITICAL
    level = LogLevel.CRITICAL if critical else LogLevel.WARNING
    agent = order.delivery_agent

    order_details = {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "delivery_agent": agent.name if agent else None,
        "payout_id": payout.id if payout else None,
        "payout_status": payout.status if payout else None,
    }
    entry = audit_service.log_system_event(
        db,
        SystemLogType.COMPLIANCE_ESCALATION,
        f"Compliance escalation on order {order.order_number}: {reason}",
        user_id=actor_id,
        context={
            **order_details,
            "priority": priority.value,
            "reason": reason,
            "escalated_by_role": actor_role.value if isinstance(actor_role, Role) else actor_role,
        },
        level=level,
    )
    db.commit()

    log = logger.critical if critical else logger.warning
    log(
        "Compliance escalation %s on order %s (priority=%s, payout=%s)",
        entry.id,
        order.order_number,
        priority.value,
        order_details["payout_id"],
    )

    return {
        "escalation_id": entry.id,
        "order_details": order_details,
        "priority": priority.value,
        "level": level.value,
        "reason": reason,
        "escalated_at": entry.created_at,
    }
