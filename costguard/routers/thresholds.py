"""Threshold validation and escalation approval endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from costguard.core.deps import get_current_session, get_db, get_threshold_policy, require_roles
from costguard.core.rate_limit import VALIDATE_COST_LIMIT, limiter
from costguard.core.threshold_policy import CostThresholdPolicy
from costguard.db.enums import (
    ROLES_CAN_OPERATE,
    CostType,
    EscalationPriority,
    EscalationStatus,
    ViolationStatus,
)
from costguard.schemas.auth import UserSession
from costguard.schemas.threshold import (
    CostValidationRequest,
    CostValidationResponse,
    DecisionRequest,
    DecisionResponse,
    EscalationDetail,
    EscalationListResponse,
    EscalationRead,
    PendingApprovalsResponse,
    ThresholdStatisticsResponse,
    UrgentItemsResponse,
    ViolationListResponse,
    ViolationRead,
)
from costguard.services import escalation_service, threshold_service
from costguard.utils.pagination import PaginationParams, get_pagination


router = APIRouter(prefix="/thresholds", tags=["thresholds"])

operator = require_roles(ROLES_CAN_OPERATE)


@router.post("/validate-cost", response_model=CostValidationResponse)
@limiter.limit(VALIDATE_COST_LIMIT)
def validate_cost(
    data: CostValidationRequest,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    policy: CostThresholdPolicy = Depends(get_threshold_policy),
):
    """
    Check a cost against its threshold.

    Open to any authenticated user. A breach records a blocked violation
    and, when auto-escalation is enabled, opens an escalation.
    """
    result = threshold_service.validate_cost(
        db,
        policy,
        cost_type=data.type.value,
        amount=data.amount,
        category=data.category,
        context=data.policy_context(),
        user_id=session.user_id,
        reference_type=data.reference_type,
        reference_id=data.reference_id,
    )
    evaluation = result.evaluation
    if result.within_limit:
        message = "Cost is within threshold"
    elif result.escalation is not None:
        message = "Cost exceeds threshold; escalation created for approval"
    else:
        message = "Cost exceeds threshold; violation recorded"

    return CostValidationResponse(
        within_limit=evaluation.within_limit,
        limit=float(evaluation.limit),
        overage=float(evaluation.overage),
        cost_type=data.type,
        category=evaluation.category,
        violation=ViolationRead.model_validate(result.violation) if result.violation else None,
        escalation=EscalationRead.model_validate(result.escalation) if result.escalation else None,
        message=message,
    )


@router.get("/violations", response_model=ViolationListResponse)
def list_violations(
    status: ViolationStatus | None = Query(None),
    cost_type: CostType | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    items, total = threshold_service.list_violations(
        db, pagination, status=status, cost_type=cost_type
    )
    return ViolationListResponse(
        items=[ViolationRead.model_validate(v) for v in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.pages(total),
        summary=threshold_service.violation_summary(db),
    )


@router.get("/escalations", response_model=EscalationListResponse)
def list_escalations(
    status: EscalationStatus | None = Query(None),
    priority: EscalationPriority | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    items, total = escalation_service.list_escalations(
        db, pagination, status=status, priority=priority
    )
    return EscalationListResponse(
        items=[EscalationRead.model_validate(e) for e in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.pages(total),
        summary=escalation_service.escalation_summary(db),
    )


@router.get("/escalations/{escalation_id}", response_model=EscalationDetail)
def get_escalation(
    escalation_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    escalation = escalation_service.get_escalation(db, escalation_id)
    if not escalation:
        raise HTTPException(status_code=404, detail="Escalation not found")
    return EscalationDetail.model_validate(escalation)


@router.get("/pending-approvals", response_model=PendingApprovalsResponse)
def pending_approvals(
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    """Escalations awaiting the caller's decision, most urgent first."""
    items = escalation_service.list_pending(db, session.role, session.user_id)
    return PendingApprovalsResponse(
        items=[EscalationRead.model_validate(e) for e in items],
        summary=escalation_service.pending_summary(items),
    )


@router.post("/escalations/{escalation_id}/approve-or-reject", response_model=DecisionResponse)
def decide_escalation(
    escalation_id: int,
    data: DecisionRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    """
    Record the caller's decision.

    403 if the caller's role is not required, 409 if the escalation is
    already decided, expired, or the caller (or their role) already decided.
    """
    outcome = escalation_service.record_decision(
        db,
        escalation_id,
        approver_id=session.user_id,
        approver_role=session.role,
        decision=data.decision,
        reason=data.reason,
    )
    return DecisionResponse(
        decision=outcome.decision,
        escalation_id=outcome.escalation_id,
        status=outcome.status,
        final_outcome=outcome.final_outcome,
        pending_roles=outcome.pending_roles,
        message=outcome.message,
    )


@router.get("/statistics", response_model=ThresholdStatisticsResponse)
def statistics(
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    stats = threshold_service.get_statistics(db)
    stats["recent_violations"] = [
        ViolationRead.model_validate(v) for v in stats["recent_violations"]
    ]
    return ThresholdStatisticsResponse(**stats)


@router.get("/urgent", response_model=UrgentItemsResponse)
def urgent_items(
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    """Escalations expiring soon and blocked violations more than double their limit."""
    urgent = threshold_service.get_urgent_items(db)
    return UrgentItemsResponse(
        expiring_escalations=[EscalationRead.model_validate(e) for e in urgent["expiring_escalations"]],
        critical_violations=[ViolationRead.model_validate(v) for v in urgent["critical_violations"]],
        total_urgent=urgent["total_urgent"],
    )
