"""Pydantic schemas for threshold validation and escalations."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from costguard.db.enums import (
    CostType,
    Decision,
    EscalationPriority,
    EscalationStatus,
    ViolationStatus,
)
from costguard.schemas.common import UtcDatetime


class CostValidationRequest(BaseModel):
    """A cost to check against its threshold."""
    type: CostType
    amount: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    category: str | None = Field(None, max_length=50)
    quantity: int | None = Field(None, ge=1)
    storekeeper_fee: float | None = Field(None, ge=0)
    transport_fare: float | None = Field(None, ge=0)
    reference_type: str | None = Field(None, max_length=50)
    reference_id: int | None = None
    context: dict[str, Any] | None = None

    def policy_context(self) -> dict[str, Any]:
        context = dict(self.context or {})
        for key in ("quantity", "storekeeper_fee", "transport_fare"):
            value = getattr(self, key)
            if value is not None:
                context[key] = value
        return context


class ViolationRead(BaseModel):
    id: int
    cost_type: CostType
    category: str | None
    amount: float
    threshold_limit: float
    overage_amount: float
    status: ViolationStatus
    created_by: int | None
    reference_type: str | None = None
    reference_id: int | None = None
    created_at: UtcDatetime
    approved_at: UtcDatetime | None = None
    rejected_at: UtcDatetime | None = None
    approved_amount: float | None = None
    rejection_reason: str | None = None

    model_config = {"from_attributes": True}


class ApprovalDecisionRead(BaseModel):
    id: int
    approver_id: int
    approver_role: str
    decision: Decision
    decision_reason: str | None
    decision_at: UtcDatetime

    model_config = {"from_attributes": True}


class EscalationRead(BaseModel):
    id: int
    threshold_violation_id: int
    escalation_type: str
    amount_requested: float
    threshold_limit: float
    overage_amount: float
    priority: EscalationPriority
    approval_required: list[str]
    pending_roles: list[str] = []
    escalation_reason: str | None
    status: EscalationStatus
    expires_at: UtcDatetime
    created_by: int | None
    created_at: UtcDatetime
    final_decision_at: UtcDatetime | None = None
    final_outcome: str | None = None
    rejection_reason: str | None = None

    model_config = {"from_attributes": True}


class EscalationDetail(EscalationRead):
    decisions: list[ApprovalDecisionRead] = []
    violation: ViolationRead | None = None


class CostValidationResponse(BaseModel):
    within_limit: bool
    limit: float
    overage: float
    cost_type: CostType
    category: str | None
    violation: ViolationRead | None = None
    escalation: EscalationRead | None = None
    message: str


class DecisionRequest(BaseModel):
    decision: Decision
    reason: str | None = Field(None, max_length=1000)


class DecisionResponse(BaseModel):
    decision: Decision
    escalation_id: int
    status: EscalationStatus
    final_outcome: str | None
    pending_roles: list[str]
    message: str


class ViolationSummary(BaseModel):
    total: int
    blocked: int
    approved: int
    rejected: int
    total_overage: float


class ViolationListResponse(BaseModel):
    items: list[ViolationRead]
    total: int
    page: int
    per_page: int
    pages: int
    summary: ViolationSummary


class EscalationSummary(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    expired: int
    critical_pending: int


class EscalationListResponse(BaseModel):
    items: list[EscalationRead]
    total: int
    page: int
    per_page: int
    pages: int
    summary: EscalationSummary


class PendingApprovalSummary(BaseModel):
    total_pending: int
    critical: int
    high: int
    expiring_soon: int


class PendingApprovalsResponse(BaseModel):
    items: list[EscalationRead]
    summary: PendingApprovalSummary


class ViolationStatistics(ViolationSummary):
    average_overage: float
    by_cost_type: dict[str, int]


class ThresholdStatisticsResponse(BaseModel):
    violations: ViolationStatistics
    escalations: EscalationSummary
    compliance_rate: float
    recent_violations: list[ViolationRead]


class UrgentItemsResponse(BaseModel):
    expiring_escalations: list[EscalationRead]
    critical_violations: list[ViolationRead]
    total_urgent: int
