"""Threshold validation service: records violations and feeds the escalation engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from costguard.core.config import settings
from costguard.core.threshold_policy import CostThresholdPolicy, ThresholdEvaluation
from costguard.db.enums import (
    CostType,
    EscalationStatus,
    LogLevel,
    SystemLogType,
    ViolationStatus,
)
from costguard.db.models import EscalationRequest, ThresholdViolation
from costguard.services import audit_service, escalation_service
from costguard.utils.datetime_utils import ensure_utc, utcnow
from costguard.utils.pagination import PaginationParams, paginate_select

logger = logging.getLogger(__name__)

URGENT_VIOLATION_LIMIT = 10


@dataclass
class CostValidationResult:
    evaluation: ThresholdEvaluation
    violation: ThresholdViolation | None = None
    escalation: EscalationRequest | None = None

    @property
    def within_limit(self) -> bool:
        return self.evaluation.within_limit


def validate_cost(
    db: Session,
    policy: CostThresholdPolicy,
    *,
    cost_type: str,
    amount: Decimal,
    category: str | None = None,
    context: dict[str, Any] | None = None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    now: datetime | None = None,
) -> CostValidationResult:
    """
    Evaluate a cost and record a violation when it breaches its limit.

    When AUTO_ESCALATE_VIOLATIONS is on, the escalation is opened in the same
    transaction as the violation.
    """
    evaluation = policy.evaluate(cost_type, category, amount, context)
    if evaluation.within_limit:
        return CostValidationResult(evaluation=evaluation)

    now = ensure_utc(now) if now else utcnow()
    violation = ThresholdViolation(
        cost_type=cost_type,
        category=evaluation.category,
        amount=Decimal(str(amount)),
        threshold_limit=evaluation.limit,
        overage_amount=evaluation.overage,
        status=ViolationStatus.BLOCKED.value,
        created_by=user_id,
        reference_type=reference_type,
        reference_id=reference_id,
        context=dict(context) if context else None,
        created_at=now,
    )
    db.add(violation)
    db.flush()

    audit_service.log_system_event(
        db,
        SystemLogType.THRESHOLD_VIOLATION,
        f"{cost_type} cost of {violation.amount} exceeds limit {evaluation.limit}",
        user_id=user_id,
        context={
            "threshold_violation_id": violation.id,
            "cost_type": cost_type,
            "category": evaluation.category,
            "overage": float(evaluation.overage),
        },
        level=LogLevel.WARNING,
    )
    logger.warning(
        "Threshold violation %s: %s/%s amount=%s limit=%s overage=%s",
        violation.id,
        cost_type,
        evaluation.category,
        violation.amount,
        evaluation.limit,
        evaluation.overage,
    )

    escalation = None
    if settings.AUTO_ESCALATE_VIOLATIONS:
        escalation = escalation_service.create_escalation(
            db,
            violation,
            approvers=evaluation.approvers,
            created_by=user_id,
            now=now,
            commit=False,
        )

    db.commit()
    db.refresh(violation)
    if escalation is not None:
        db.refresh(escalation)
    return CostValidationResult(evaluation=evaluation, violation=violation, escalation=escalation)


def list_violations(
    db: Session,
    pagination: PaginationParams,
    status: ViolationStatus | None = None,
    cost_type: CostType | None = None,
) -> tuple[list[ThresholdViolation], int]:
    stmt = select(ThresholdViolation).order_by(
        ThresholdViolation.created_at.desc(), ThresholdViolation.id.desc()
    )
    if status:
        stmt = stmt.where(ThresholdViolation.status == status.value)
    if cost_type:
        stmt = stmt.where(ThresholdViolation.cost_type == cost_type.value)
    return paginate_select(db, stmt, pagination)


def violation_summary(db: Session) -> dict:
    counts = dict(
        db.execute(
            select(ThresholdViolation.status, func.count(ThresholdViolation.id)).group_by(
                ThresholdViolation.status
            )
        ).all()
    )
    total_overage = db.execute(
        select(func.coalesce(func.sum(ThresholdViolation.overage_amount), 0))
    ).scalar_one()
    return {
        "total": sum(counts.values()),
        "blocked": counts.get(ViolationStatus.BLOCKED.value, 0),
        "approved": counts.get(ViolationStatus.APPROVED.value, 0),
        "rejected": counts.get(ViolationStatus.REJECTED.value, 0),
        "total_overage": float(total_overage or 0),
    }


def get_statistics(db: Session) -> dict:
    """
    Aggregate counts and compliance rate.

    compliance_rate is the share of violations that reached a decision
    (approved or rejected); 100 when nothing has been violated.
    """
    violations = violation_summary(db)
    average_overage = db.execute(
        select(func.avg(ThresholdViolation.overage_amount))
    ).scalar_one()
    by_type = dict(
        db.execute(
            select(ThresholdViolation.cost_type, func.count(ThresholdViolation.id)).group_by(
                ThresholdViolation.cost_type
            )
        ).all()
    )
    recent = db.execute(
        select(ThresholdViolation)
        .order_by(ThresholdViolation.created_at.desc(), ThresholdViolation.id.desc())
        .limit(10)
    ).scalars().all()

    total = violations["total"]
    resolved = violations["approved"] + violations["rejected"]
    compliance_rate = round(resolved / total * 100, 2) if total else 100.0

    return {
        "violations": {
            **violations,
            "average_overage": round(float(average_overage or 0), 2),
            "by_cost_type": {t.value: by_type.get(t.value, 0) for t in CostType},
        },
        "escalations": escalation_service.escalation_summary(db),
        "compliance_rate": compliance_rate,
        "recent_violations": list(recent),
    }


def get_urgent_items(db: Session, now: datetime | None = None) -> dict:
    """Escalations expiring soon and blocked violations more than double their limit."""
    now = ensure_utc(now) if now else utcnow()
    window_end = now + timedelta(hours=settings.ESCALATION_EXPIRING_SOON_HOURS)

    expiring = db.execute(
        select(EscalationRequest)
        .where(
            EscalationRequest.status == EscalationStatus.PENDING_APPROVAL.value,
            EscalationRequest.expires_at > now,
            EscalationRequest.expires_at <= window_end,
        )
        .options(selectinload(EscalationRequest.decisions))
        .order_by(EscalationRequest.expires_at.asc())
    ).scalars().all()

    blocked = db.execute(
        select(ThresholdViolation)
        .where(
            ThresholdViolation.status == ViolationStatus.BLOCKED.value,
            ThresholdViolation.overage_amount
            > ThresholdViolation.threshold_limit,
        )
        .order_by(ThresholdViolation.overage_amount.desc(), ThresholdViolation.id.asc())
        .limit(URGENT_VIOLATION_LIMIT)
    ).scalars().all()

    return {
        "expiring_escalations": list(expiring),
        "critical_violations": list(blocked),
        "total_urgent": len(expiring) + len(blocked),
    }
