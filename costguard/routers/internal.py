"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron (systemd timer, k8s CronJob, GH Actions).
"""
import logging

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from costguard.core.config import settings
from costguard.db.session import SessionLocal
from costguard.services import deduction_service, escalation_service, payout_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


class PayoutAutoRevertSweepResponse(BaseModel):
    reverted_count: int
    skipped_count: int
    error_count: int
    errors: list[dict]
    cutoff_hours: int


class SalaryDeductionSweepResponse(BaseModel):
    processed_count: int
    skipped_count: int
    error_count: int
    errors: list[dict]
    total_amount: float


class EscalationExpirySweepResponse(BaseModel):
    expired_count: int


@router.post("/payout-auto-revert", response_model=PayoutAutoRevertSweepResponse)
def payout_auto_revert(x_internal_secret: str = Header(...)):
    """
    Hourly sweep reverting payouts left pending past the cutoff.

    Idempotent: payouts already reverted no longer match the filter.
    """
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        result = payout_service.auto_revert_stale(db)

    return PayoutAutoRevertSweepResponse(
        reverted_count=result.reverted_count,
        skipped_count=result.skipped_count,
        error_count=result.error_count,
        errors=result.errors,
        cutoff_hours=result.cutoff_hours,
    )


@router.post("/escalation-expiry", response_model=EscalationExpirySweepResponse)
def escalation_expiry(x_internal_secret: str = Header(...)):
    """Mark overdue pending escalations as expired."""
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        expired = escalation_service.expire_stale_escalations(db)

    return EscalationExpirySweepResponse(expired_count=expired)


@router.post("/salary-deductions", response_model=SalaryDeductionSweepResponse)
def salary_deductions(x_internal_secret: str = Header(...)):
    """
    Daily sweep processing pending salary deductions whose date has passed.

    Idempotent: processed rows no longer match the filter.
    """
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        result = deduction_service.process_due_deductions(db)

    return SalaryDeductionSweepResponse(
        processed_count=result.processed_count,
        skipped_count=result.skipped_count,
        error_count=result.error_count,
        errors=result.errors,
        total_amount=float(result.total_amount),
    )
