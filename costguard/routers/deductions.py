"""Salary deduction endpoints: listing and manual settlement."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from costguard.core.deps import get_db, require_roles
from costguard.db.enums import ROLES_CAN_OPERATE, ROLES_CAN_SETTLE_DEDUCTIONS, DeductionStatus
from costguard.schemas.auth import UserSession
from costguard.schemas.deduction import (
    DeductionListResponse,
    DeductionSettleRequest,
    SalaryDeductionRead,
)
from costguard.services import deduction_service
from costguard.utils.pagination import PaginationParams, get_pagination


router = APIRouter(prefix="/deductions", tags=["deductions"])

operator = require_roles(ROLES_CAN_OPERATE)
settler = require_roles(ROLES_CAN_SETTLE_DEDUCTIONS)


@router.get("", response_model=DeductionListResponse)
def list_deductions(
    status: DeductionStatus | None = Query(None),
    user_id: int | None = Query(None),
    overdue: bool = Query(False, description="Pending deductions past their deduction date"),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(operator),
):
    items, total = deduction_service.list_deductions(
        db, pagination, status=status, user_id=user_id, overdue=overdue
    )
    return DeductionListResponse(
        items=[SalaryDeductionRead.model_validate(d) for d in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.pages(total),
        summary=deduction_service.deduction_summary(db),
    )


@router.post("/{deduction_id}/process", response_model=SalaryDeductionRead)
def process_deduction(
    deduction_id: int,
    data: DeductionSettleRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(settler),
):
    """Settle a pending deduction now. 409 if it is already processed or cancelled."""
    return deduction_service.process_deduction(
        db, deduction_id, session.user_id, notes=data.notes if data else None
    )


@router.post("/{deduction_id}/cancel", response_model=SalaryDeductionRead)
def cancel_deduction(
    deduction_id: int,
    data: DeductionSettleRequest | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(settler),
):
    return deduction_service.cancel_deduction(
        db, deduction_id, session.user_id, notes=data.notes if data else None
    )
