"""
Escalation engine: quorum approval of over-threshold costs.

An escalation names the roles that must sign off (``approval_required``).
It is approved once every one of those roles has approved, rejected by the
first rejection, and expired once ``expires_at`` passes. Expiry is checked
lazily whenever a decision is attempted; ``expire_stale_escalations`` is an
optional sweep with the same effect. Rejection and expiry each raise a
pending salary deduction for whoever raised the cost.

All decision recording happens under a row lock on the escalation so the
decision insert, the quorum recomputation and the propagation to the
violation commit together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import case, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from costguard.core.config import settings
from costguard.core.exceptions import (
    AuthorizationError,
    DomainValidationError,
    NotFoundError,
    StateConflictError,
)
from costguard.db.enums import (
    Decision,
    DeductionReason,
    EscalationPriority,
    EscalationStatus,
    LogLevel,
    Role,
    SystemLogType,
    ViolationStatus,
)
from costguard.db.models import ApprovalDecision, EscalationRequest, ThresholdViolation
from costguard.services import audit_service, deduction_service
from costguard.utils.datetime_utils import ensure_utc, utcnow
from costguard.utils.pagination import PaginationParams, paginate_select

logger = logging.getLogger(__name__)


class EscalationNotFound(NotFoundError):
    pass


class ViolationNotFound(NotFoundError):
    pass


class ViolationAlreadyEscalated(StateConflictError):
    """The violation already has an open escalation."""


class ViolationAlreadyResolved(StateConflictError):
    """The violation is no longer blocked."""


class NonPositiveOverage(DomainValidationError):
    pass


class AlreadyDecided(StateConflictError):
    """The escalation reached approved/rejected before this decision."""


class AlreadyExpired(StateConflictError):
    pass


class DuplicateDecision(StateConflictError):
    """
    This approver, or another holder of the same role, already decided.

    Each required role counts once toward the quorum: a second user holding
    an already-decided role is refused. Both rules are backed by
    unique constraints on approval_decisions.
    """


class ApproverNotAuthorized(AuthorizationError):
    """Approver's role is not in approval_required."""


class InvalidDecision(DomainValidationError):
    pass


# Overage ratio breakpoints (overage / limit)
CRITICAL_RATIO = Decimal("1.0")
HIGH_RATIO = Decimal("0.5")

PRIORITY_APPROVERS: dict[EscalationPriority, frozenset[str]] = {
    EscalationPriority.CRITICAL: frozenset({Role.FC.value, Role.GM.value, Role.CEO.value}),
    EscalationPriority.HIGH: frozenset({Role.FC.value, Role.GM.value}),
    EscalationPriority.MEDIUM: frozenset({Role.FC.value}),
}


@dataclass
class DecisionOutcome:
    decision: Decision
    escalation_id: int
    status: EscalationStatus
    final_outcome: str | None = None
    pending_roles: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.status is EscalationStatus.APPROVED:
            return "Escalation approved"
        if self.status is EscalationStatus.REJECTED:
            return "Escalation rejected"
        return "Decision recorded, awaiting: " + ", ".join(self.pending_roles)


def determine_priority(
    overage: Decimal, limit: Decimal
) -> tuple[EscalationPriority, frozenset[str]]:
    """
    Map the overage ratio to a priority and its default approver set.

    ratio > 1.0 is critical, 0.5 <= ratio <= 1.0 is high, anything lower is medium.
    """
    if limit <= 0:
        return EscalationPriority.CRITICAL, PRIORITY_APPROVERS[EscalationPriority.CRITICAL]
    ratio = Decimal(overage) / Decimal(limit)
    if ratio > CRITICAL_RATIO:
        priority = EscalationPriority.CRITICAL
    elif ratio >= HIGH_RATIO:
        priority = EscalationPriority.HIGH
    else:
        priority = EscalationPriority.MEDIUM
    return priority, PRIORITY_APPROVERS[priority]


def _now(now: datetime | None) -> datetime:
    return ensure_utc(now) if now else utcnow()


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else str(role)


def _set_status(escalation: EscalationRequest, target: EscalationStatus) -> None:
    current = EscalationStatus(escalation.status)
    if not current.can_transition_to(target):
        raise AlreadyDecided(
            f"Escalation {escalation.id} cannot move from {current.value} to {target.value}"
        )
    escalation.status = target.value


def _resolve_violation(
    violation: ThresholdViolation,
    target: ViolationStatus,
    now: datetime,
    *,
    approved_amount: Decimal | None = None,
    reason: str | None = None,
) -> None:
    current = ViolationStatus(violation.status)
    if not current.can_transition_to(target):
        raise ViolationAlreadyResolved(
            f"Violation {violation.id} is already {current.value}"
        )
    violation.status = target.value
    if target is ViolationStatus.APPROVED:
        violation.approved_at = now
        violation.approved_amount = approved_amount
    else:
        violation.rejected_at = now
        violation.rejection_reason = reason


def _mark_expired(db: Session, escalation: EscalationRequest, now: datetime) -> None:
    _set_status(escalation, EscalationStatus.EXPIRED)
    escalation.final_decision_at = now
    escalation.final_outcome = EscalationStatus.EXPIRED.value
    audit_service.log_system_event(
        db,
        SystemLogType.ESCALATION_EXPIRED,
        f"Escalation {escalation.id} expired without quorum",
        context={
            "escalation_id": escalation.id,
            "threshold_violation_id": escalation.threshold_violation_id,
            "expires_at": ensure_utc(escalation.expires_at).isoformat(),
        },
        level=LogLevel.WARNING,
    )
    deduction_service.create_for_escalation(
        db, escalation, DeductionReason.EXPIRED_ESCALATION, now
    )


def _lock_escalation(db: Session, escalation_id: int) -> EscalationRequest | None:
    return db.execute(
        select(EscalationRequest)
        .where(EscalationRequest.id == escalation_id)
        .options(selectinload(EscalationRequest.decisions))
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def get_escalation(db: Session, escalation_id: int) -> EscalationRequest | None:
    return db.execute(
        select(EscalationRequest)
        .where(EscalationRequest.id == escalation_id)
        .options(
            selectinload(EscalationRequest.decisions),
            selectinload(EscalationRequest.violation),
        )
    ).scalar_one_or_none()


def get_open_escalation(
    db: Session, violation_id: int
) -> EscalationRequest | None:
    return db.execute(
        select(EscalationRequest).where(
            EscalationRequest.threshold_violation_id == violation_id,
            EscalationRequest.status == EscalationStatus.PENDING_APPROVAL.value,
        )
    ).scalar_one_or_none()


def create_escalation(
    db: Session,
    violation: ThresholdViolation,
    *,
    approvers: frozenset[str] | None = None,
    created_by: int | None = None,
    reason: str | None = None,
    now: datetime | None = None,
    commit: bool = True,
) -> EscalationRequest:
    """
    Open an escalation for a blocked violation.

    ``approvers`` overrides the ratio-derived approver set (rule-level quorum)
    but never the priority. A still-pending escalation whose deadline has
    passed is expired first, which lets a lapsed violation be re-escalated.

    Raises:
        NonPositiveOverage: violation.overage_amount <= 0
        ViolationAlreadyResolved: violation is not blocked
        ViolationAlreadyEscalated: an open escalation already exists
    """
    now = _now(now)

    overage = Decimal(violation.overage_amount or 0)
    if overage <= 0:
        raise NonPositiveOverage("Cannot escalate a violation without a positive overage")

    locked = db.execute(
        select(ThresholdViolation)
        .where(ThresholdViolation.id == violation.id)
        .with_for_update()
    ).scalar_one_or_none()
    if locked is None:
        raise ViolationNotFound(f"Violation {violation.id} not found")
    violation = locked

    if ViolationStatus(violation.status) is not ViolationStatus.BLOCKED:
        raise ViolationAlreadyResolved(
            f"Violation {violation.id} is already {violation.status}"
        )

    existing = get_open_escalation(db, violation.id)
    if existing is not None:
        if now > ensure_utc(existing.expires_at):
            _mark_expired(db, existing, now)
        else:
            raise ViolationAlreadyEscalated(
                f"Violation {violation.id} already has open escalation {existing.id}"
            )

    priority, default_approvers = determine_priority(overage, Decimal(violation.threshold_limit))
    required = approvers or default_approvers

    escalation = EscalationRequest(
        threshold_violation_id=violation.id,
        escalation_type=violation.cost_type,
        amount_requested=violation.amount,
        threshold_limit=violation.threshold_limit,
        overage_amount=violation.overage_amount,
        priority=priority.value,
        approval_required=sorted(required),
        escalation_reason=reason
        or f"{violation.cost_type} cost exceeds threshold by {overage:.2f}",
        status=EscalationStatus.PENDING_APPROVAL.value,
        expires_at=now + timedelta(hours=settings.escalation_ttl_hours(priority.value)),
        created_by=created_by,
        created_at=now,
    )
    db.add(escalation)
    db.flush()

    audit_service.log_system_event(
        db,
        SystemLogType.ESCALATION_CREATED,
        f"Escalation {escalation.id} opened ({priority.value})",
        user_id=created_by,
        context={
            "escalation_id": escalation.id,
            "threshold_violation_id": violation.id,
            "priority": priority.value,
            "approval_required": escalation.approval_required,
        },
        level=LogLevel.WARNING if priority is EscalationPriority.CRITICAL else LogLevel.INFO,
    )

    if commit:
        db.commit()
        db.refresh(escalation)

    logger.info(
        "Escalation %s created for violation %s: priority=%s approvers=%s",
        escalation.id,
        violation.id,
        priority.value,
        ",".join(escalation.approval_required),
    )
    return escalation


def record_decision(
    db: Session,
    escalation_id: int,
    approver_id: int,
    approver_role: Role | str,
    decision: Decision | str,
    reason: str | None = None,
    now: datetime | None = None,
) -> DecisionOutcome:
    """
    Record one approver's decision and recompute the escalation outcome.

    Check order: existence, terminal state, deadline, role membership,
    duplicate decision. A rejection ends the escalation immediately; an
    approval ends it only when every required role has approved.

    Raises:
        EscalationNotFound, AlreadyExpired, AlreadyDecided,
        ApproverNotAuthorized, DuplicateDecision, InvalidDecision
    """
    now = _now(now)
    try:
        decision = Decision(decision)
    except ValueError:
        raise InvalidDecision(f"Decision must be one of: {', '.join(d.value for d in Decision)}")
    role = _role_value(approver_role)

    escalation = _lock_escalation(db, escalation_id)
    if escalation is None:
        raise EscalationNotFound(f"Escalation {escalation_id} not found")

    status = EscalationStatus(escalation.status)
    if status is EscalationStatus.EXPIRED:
        raise AlreadyExpired(f"Escalation {escalation_id} has expired")
    if status.is_terminal:
        raise AlreadyDecided(f"Escalation {escalation_id} is already {status.value}")

    if now > ensure_utc(escalation.expires_at):
        _mark_expired(db, escalation, now)
        db.commit()
        logger.info("Escalation %s expired on decision attempt by user %s", escalation_id, approver_id)
        raise AlreadyExpired(f"Escalation {escalation_id} has expired")

    if role not in escalation.required_roles:
        raise ApproverNotAuthorized(
            f"Role '{role}' is not required to approve escalation {escalation_id}"
        )

    for existing in escalation.decisions:
        if existing.approver_id == approver_id:
            raise DuplicateDecision("You have already decided on this escalation")
        if existing.approver_role == role:
            raise DuplicateDecision(f"Role '{role}' has already decided on this escalation")

    entry = ApprovalDecision(
        escalation=escalation,
        approver_id=approver_id,
        approver_role=role,
        decision=decision.value,
        decision_reason=reason,
        decision_at=now,
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise DuplicateDecision("A decision for this approver or role was recorded concurrently")

    violation = escalation.violation
    if decision is Decision.REJECTED:
        _set_status(escalation, EscalationStatus.REJECTED)
        escalation.final_decision_at = now
        escalation.final_outcome = Decision.REJECTED.value
        escalation.rejection_reason = reason
        _resolve_violation(violation, ViolationStatus.REJECTED, now, reason=reason)
        deduction_service.create_for_escalation(
            db, escalation, DeductionReason.REJECTED_ESCALATION, now
        )
    elif escalation.required_roles <= escalation.approved_roles:
        _set_status(escalation, EscalationStatus.APPROVED)
        escalation.final_decision_at = now
        escalation.final_outcome = Decision.APPROVED.value
        _resolve_violation(
            violation,
            ViolationStatus.APPROVED,
            now,
            approved_amount=escalation.amount_requested,
        )

    outcome = DecisionOutcome(
        decision=decision,
        escalation_id=escalation.id,
        status=EscalationStatus(escalation.status),
        final_outcome=escalation.final_outcome,
        pending_roles=escalation.pending_roles,
    )
    audit_service.log_system_event(
        db,
        SystemLogType.ESCALATION_DECIDED,
        f"{role} {decision.value} escalation {escalation.id}",
        user_id=approver_id,
        context={
            "escalation_id": escalation.id,
            "decision": decision.value,
            "status": outcome.status.value,
            "pending_roles": outcome.pending_roles,
        },
    )
    db.commit()

    logger.info(
        "Decision on escalation %s: %s by %s (user %s) -> %s",
        escalation.id,
        decision.value,
        role,
        approver_id,
        outcome.status.value,
    )
    return outcome


def list_pending(
    db: Session,
    role: Role | str,
    approver_id: int,
    now: datetime | None = None,
) -> list[EscalationRequest]:
    """
    Escalations this approver can act on now.

    Pending, not past expires_at, role in approval_required and no decision
    yet by this approver or by another holder of the same role. Ordered by
    priority (critical first), then oldest first.
    """
    now = _now(now)
    role = _role_value(role)

    already_decided = exists().where(
        ApprovalDecision.escalation_request_id == EscalationRequest.id,
        (ApprovalDecision.approver_id == approver_id) | (ApprovalDecision.approver_role == role),
    )
    rows = db.execute(
        select(EscalationRequest)
        .where(
            EscalationRequest.status == EscalationStatus.PENDING_APPROVAL.value,
            EscalationRequest.expires_at > now,
            ~already_decided,
        )
        .options(
            selectinload(EscalationRequest.decisions),
            selectinload(EscalationRequest.violation),
        )
    ).scalars().all()

    # approval_required is a JSON list; membership is checked here to stay portable
    pending = [e for e in rows if role in e.required_roles]
    pending.sort(
        key=lambda e: (-EscalationPriority(e.priority).rank, ensure_utc(e.created_at), e.id)
    )
    return pending


def pending_summary(
    escalations: list[EscalationRequest], now: datetime | None = None
) -> dict:
    now = _now(now)
    soon = now + timedelta(hours=settings.ESCALATION_EXPIRING_SOON_HOURS)
    return {
        "total_pending": len(escalations),
        "critical": sum(1 for e in escalations if e.priority == EscalationPriority.CRITICAL.value),
        "high": sum(1 for e in escalations if e.priority == EscalationPriority.HIGH.value),
        "expiring_soon": sum(1 for e in escalations if ensure_utc(e.expires_at) < soon),
    }


_priority_rank = case(
    (EscalationRequest.priority == EscalationPriority.CRITICAL.value, 3),
    (EscalationRequest.priority == EscalationPriority.HIGH.value, 2),
    else_=1,
)


def list_escalations(
    db: Session,
    pagination: PaginationParams,
    status: EscalationStatus | None = None,
    priority: EscalationPriority | None = None,
) -> tuple[list[EscalationRequest], int]:
    """Paginated escalations, most urgent first."""
    filters = []
    if status:
        filters.append(EscalationRequest.status == status.value)
    if priority:
        filters.append(EscalationRequest.priority == priority.value)

    stmt = (
        select(EscalationRequest)
        .where(*filters)
        .options(
            selectinload(EscalationRequest.decisions),
            selectinload(EscalationRequest.violation),
        )
        .order_by(_priority_rank.desc(), EscalationRequest.created_at.desc(), EscalationRequest.id.desc())
    )
    return paginate_select(db, stmt, pagination)


def escalation_summary(db: Session) -> dict:
    counts = dict(
        db.execute(
            select(EscalationRequest.status, func.count(EscalationRequest.id)).group_by(
                EscalationRequest.status
            )
        ).all()
    )
    critical_pending = db.execute(
        select(func.count(EscalationRequest.id)).where(
            EscalationRequest.status == EscalationStatus.PENDING_APPROVAL.value,
            EscalationRequest.priority == EscalationPriority.CRITICAL.value,
        )
    ).scalar_one()
    return {
        "total": sum(counts.values()),
        "pending": counts.get(EscalationStatus.PENDING_APPROVAL.value, 0),
        "approved": counts.get(EscalationStatus.APPROVED.value, 0),
        "rejected": counts.get(EscalationStatus.REJECTED.value, 0),
        "expired": counts.get(EscalationStatus.EXPIRED.value, 0),
        "critical_pending": critical_pending,
    }


def expire_stale_escalations(db: Session, now: datetime | None = None) -> int:
    """
    Mark every overdue pending escalation as expired.

    Safe to run repeatedly; already-expired rows no longer match. The owning
    violations stay blocked and can be escalated again.
    """
    now = _now(now)
    stale = db.execute(
        select(EscalationRequest)
        .where(
            EscalationRequest.status == EscalationStatus.PENDING_APPROVAL.value,
            EscalationRequest.expires_at < now,
        )
        .with_for_update(skip_locked=True)
    ).scalars().all()

    for escalation in stale:
        _mark_expired(db, escalation, now)
    db.commit()

    if stale:
        logger.info("Expired %s stale escalations", len(stale))
    return len(stale)
