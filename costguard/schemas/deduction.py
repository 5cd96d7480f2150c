"""Pydantic schemas for salary deductions."""

from typing import Any

from pydantic import BaseModel, Field

from costguard.db.enums import DeductionReason, DeductionStatus
from costguard.schemas.common import UtcDatetime


class SalaryDeductionRead(BaseModel):
    id: int
    user_id: int
    threshold_violation_id: int
    escalation_request_id: int
    amount: float
    reason: DeductionReason
    description: str | None
    status: DeductionStatus
    deduction_date: UtcDatetime
    context: dict[str, Any] | None = None
    created_at: UtcDatetime
    processed_at: UtcDatetime | None = None
    cancelled_at: UtcDatetime | None = None
    settled_by: int | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class DeductionListResponse(BaseModel):
    items: list[SalaryDeductionRead]
    total: int
    page: int
    per_page: int
    pages: int
    summary: dict[str, Any]


class DeductionSettleRequest(BaseModel):
    notes: str | None = Field(None, max_length=500)
