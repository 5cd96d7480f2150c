"""Payout compliance endpoints: confirmations, transitions, auto-revert, reminders."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from costguard.core.deps import get_db, require_roles
from costguard.db.enums import ROLES_CAN_OPERATE, ROLES_CAN_UNLOCK_PAYOUT
from costguard.schemas.auth import UserSession
from costguard.schemas.payout import (
    ActorBrief,
    AgentBrief,
    AutoRevertRequest,
    AutoRevertResponse,
    ComplianceEscalationRequest,
    ComplianceEscalationResponse,
    PayoutActionLogRead,
    PayoutActionRequest,
    PayoutMetricsResponse,
    PayoutRead,
    PayoutRejectRequest,
    PayoutUnlockRequest,
    PendingConfirmationItem,
    PendingConfirmationsResponse,
    ReminderRequest,
    ReminderResponse,
)
from costguard.services import compliance_service, payout_service
from costguard.utils.datetime_utils import utcnow
from costguard.utils.pagination import PaginationParams, get_pagination


router = APIRouter(prefix="/payouts", tags=["payouts"])

operator = require_roles(ROLES_CAN_OPERATE)


@router.get("/pending-confirmations", response_model=PendingConfirmationsResponse)
def pending_confirmations(
    zone: str | None = Query(None, max_length=100),
    flagged: bool | None = Query(None),
    aging_min: int | None = Query(None, ge=0, description="Minimum age in hours"),
    sort: str = Query("created_at", pattern="^(created_at|compliance_score|zone)$"),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    """Intent-marked payouts awaiting final confirmation, with their age in hours."""
    now = utcnow()
    items, total = payout_service.list_pending_confirmations(
        db, pagination, zone=zone, flagged=flagged, aging_min=aging_min, sort=sort, now=now
    )

    rows = []
    for payout in items:
        agent = payout.delivery_agent
        actor = payout.last_actor
        rows.append(
            PendingConfirmationItem(
                **PayoutRead.model_validate(payout).model_dump(),
                aging_hours=payout_service.aging_hours(payout, now),
                delivery_agent=AgentBrief(name=agent.name, zone=agent.zone) if agent else None,
                last_action=ActorBrief(name=actor.name, role=actor.role) if actor else None,
            )
        )

    return PendingConfirmationsResponse(
        items=rows,
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.pages(total),
        filters_applied={
            "zone": zone,
            "flagged": flagged,
            "aging_min": aging_min,
            "sort": sort,
        },
    )


@router.get("/metrics", response_model=PayoutMetricsResponse)
def payout_metrics(
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.get_payout_metrics(db)


@router.post("/auto-revert", response_model=AutoRevertResponse)
def auto_revert(
    data: AutoRevertRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    """
    Revert stale pending payouts now.

    Always 200; per-payout failures are listed in ``errors``.
    """
    result = payout_service.auto_revert_stale(
        db, data.cutoff_hours if data else None, actor_id=session.user_id
    )
    return AutoRevertResponse(
        reverted_count=result.reverted_count,
        reverted_ids=result.reverted_ids,
        skipped_count=result.skipped_count,
        error_count=result.error_count,
        errors=result.errors,
        cutoff_hours=result.cutoff_hours,
    )


@router.post("/send-reminder", response_model=ReminderResponse)
def send_reminder(
    data: ReminderRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    result = compliance_service.send_reminder(
        db,
        data.delivery_agent_ids,
        message=data.message,
        target_date=data.target_date,
        actor_id=session.user_id,
    )
    return ReminderResponse(
        sent_count=result.sent_count,
        error_count=result.error_count,
        sent_notifications=result.sent_notifications,
        errors=result.errors,
        target_date=result.target_date,
    )


@router.post("/trigger-escalation", response_model=ComplianceEscalationResponse)
def trigger_escalation(
    data: ComplianceEscalationRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    """Record an advisory compliance escalation against an order."""
    return compliance_service.trigger_escalation(
        db,
        data.order_id,
        reason=data.reason,
        priority=data.priority,
        actor_id=session.user_id,
        actor_role=session.role,
    )


@router.post("/{payout_id}/mark-intent", response_model=PayoutRead)
def mark_intent(
    payout_id: int,
    data: PayoutActionRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.mark_intent(
        db, payout_id, session.user_id, session.role, note=data.note if data else None
    )


@router.post("/{payout_id}/approve", response_model=PayoutRead)
def approve_payout(
    payout_id: int,
    data: PayoutActionRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.approve(
        db, payout_id, session.user_id, session.role, note=data.note if data else None
    )


@router.post("/{payout_id}/reject", response_model=PayoutRead)
def reject_payout(
    payout_id: int,
    data: PayoutRejectRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.reject(
        db, payout_id, session.user_id, data.reason, actor_role=session.role
    )


@router.post("/{payout_id}/hold", response_model=PayoutRead)
def hold_payout(
    payout_id: int,
    data: PayoutActionRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.place_on_hold(
        db, payout_id, session.user_id, session.role, note=data.note if data else None
    )


@router.post("/{payout_id}/investigate", response_model=PayoutRead)
def investigate_payout(
    payout_id: int,
    data: PayoutActionRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.flag_for_investigation(
        db, payout_id, session.user_id, session.role, note=data.note if data else None
    )


@router.post("/{payout_id}/release", response_model=PayoutRead)
def release_payout(
    payout_id: int,
    data: PayoutActionRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.release(
        db, payout_id, session.user_id, session.role, note=data.note if data else None
    )


@router.post("/{payout_id}/unlock", response_model=PayoutRead)
def unlock_payout(
    payout_id: int,
    data: PayoutUnlockRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_UNLOCK_PAYOUT)),
):
    return payout_service.unlock(
        db, payout_id, session.user_id, session.role, data.reason
    )


@router.get("/{payout_id}/actions", response_model=list[PayoutActionLogRead])
def payout_actions(
    payout_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    return payout_service.list_payout_actions(db, payout_id)
