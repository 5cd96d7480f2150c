"""Pydantic schemas for payouts and compliance actions."""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from costguard.db.enums import CompliancePriority, PayoutStatus
from costguard.schemas.common import UtcDatetime


class PayoutRead(BaseModel):
    id: int
    order_id: int | None
    delivery_agent_id: int
    amount: float
    status: PayoutStatus
    compliance_score: int
    otp_submitted: bool
    photo_verified: bool
    pos_matched: bool
    flagged: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime | None = None
    locked_at: UtcDatetime | None = None
    approved_at: UtcDatetime | None = None
    rejected_at: UtcDatetime | None = None
    rejection_reason: str | None = None
    last_action_by: int | None = None

    model_config = {"from_attributes": True}


class AgentBrief(BaseModel):
    name: str
    zone: str | None


class ActorBrief(BaseModel):
    name: str
    role: str


class PendingConfirmationItem(PayoutRead):
    aging_hours: int
    delivery_agent: AgentBrief | None = None
    last_action: ActorBrief | None = None


class PendingConfirmationsResponse(BaseModel):
    items: list[PendingConfirmationItem]
    total: int
    page: int
    per_page: int
    pages: int
    filters_applied: dict[str, Any]


class PayoutActionRequest(BaseModel):
    note: str | None = Field(None, max_length=1000)


class PayoutRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PayoutUnlockRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PayoutActionLogRead(BaseModel):
    id: int
    action: str
    from_status: str | None
    to_status: str | None
    performed_by: int | None
    role: str | None
    note: str | None
    created_at: UtcDatetime

    model_config = {"from_attributes": True}


class AutoRevertRequest(BaseModel):
    cutoff_hours: int | None = Field(None, ge=0, le=24 * 30)


class AutoRevertResponse(BaseModel):
    reverted_count: int
    reverted_ids: list[int]
    skipped_count: int
    error_count: int
    errors: list[dict[str, Any]]
    cutoff_hours: int


class ReminderRequest(BaseModel):
    delivery_agent_ids: list[int] = Field(..., min_length=1)
    message: str | None = Field(None, max_length=500)
    target_date: date | None = None


class ReminderResponse(BaseModel):
    sent_count: int
    error_count: int
    sent_notifications: list[dict[str, Any]]
    errors: list[dict[str, Any]]
    target_date: date


class ComplianceEscalationRequest(BaseModel):
    order_id: int
    reason: str = Field(..., min_length=1, max_length=1000)
    priority: CompliancePriority = CompliancePriority.MEDIUM


class ComplianceEscalationResponse(BaseModel):
    escalation_id: int
    order_details: dict[str, Any]
    priority: CompliancePriority
    level: str
    reason: str
    escalated_at: UtcDatetime


class PayoutMetricsResponse(BaseModel):
    week_start: UtcDatetime
    created_this_week: int
    approved_this_week: int
    rejected_this_week: int
    auto_reverted_this_week: int
    pending: int
    awaiting_confirmation: int
    on_hold: int
    under_investigation: int
    aging_over_cutoff: int
    cutoff_hours: int
