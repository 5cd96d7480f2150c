"""
Salary deductions raised when an escalation is rejected or expires.

The deduction is written in the same transaction as the escalation outcome
and is charged to whoever raised the cost. It stays pending until its
deduction date; ``process_due_deductions`` settles due rows one by one, and
finance can process or cancel a pending row by hand. Settlement is a
compare-and-swap on ``status = 'pending'`` so a manual action and the sweep
never both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from costguard.core.config import settings
from costguard.core.exceptions import NotFoundError, StateConflictError
from costguard.db.enums import DeductionReason, DeductionStatus, LogLevel, SystemLogType
from costguard.db.models import EscalationRequest, SalaryDeduction
from costguard.services import audit_service
from costguard.utils.datetime_utils import ensure_utc, utcnow
from costguard.utils.pagination import PaginationParams, paginate_select

logger = logging.getLogger(__name__)


class DeductionNotFound(NotFoundError):
    pass


class DeductionAlreadySettled(StateConflictError):
    """Only pending deductions can be processed or cancelled."""


@dataclass(frozen=True)
class DeductionRule:
    """Share of the overage to deduct, clamped to [minimum, maximum]."""

    percentage: Decimal
    minimum: Decimal
    maximum: Decimal
    delay_days: int


DEDUCTION_RULES: dict[DeductionReason, DeductionRule] = {
    DeductionReason.REJECTED_ESCALATION: DeductionRule(
        percentage=Decimal("50"), minimum=Decimal("500"), maximum=Decimal("25000"), delay_days=15
    ),
    DeductionReason.EXPIRED_ESCALATION: DeductionRule(
        percentage=Decimal("75"), minimum=Decimal("750"), maximum=Decimal("37500"), delay_days=7
    ),
}

_DESCRIPTIONS = {
    DeductionReason.REJECTED_ESCALATION: "Escalation rejected: cost exceeded threshold by {overage:,.2f}",
    DeductionReason.EXPIRED_ESCALATION: (
        "Escalation expired without approval: cost exceeded threshold by {overage:,.2f}"
    ),
}

_SETTLE_LOG_TYPES = {
    DeductionStatus.PROCESSED: SystemLogType.SALARY_DEDUCTION_PROCESSED,
    DeductionStatus.CANCELLED: SystemLogType.SALARY_DEDUCTION_CANCELLED,
}


@dataclass
class DeductionSweepResult:
    processed_ids: list[int] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    skipped_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return len(self.processed_ids)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def _now(now: datetime | None) -> datetime:
    return ensure_utc(now) if now else utcnow()


def calculate_amount(overage: Decimal, reason: DeductionReason) -> Decimal:
    rule = DEDUCTION_RULES[reason]
    amount = Decimal(overage) * rule.percentage / Decimal("100")
    amount = min(max(amount, rule.minimum), rule.maximum)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def get_deduction(db: Session, deduction_id: int) -> SalaryDeduction | None:
    return db.get(SalaryDeduction, deduction_id)


def create_for_escalation(
    db: Session,
    escalation: EscalationRequest,
    reason: DeductionReason,
    now: datetime | None = None,
) -> SalaryDeduction | None:
    """
    Record a pending deduction for a rejected or expired escalation.

    Charged to the escalation's creator, falling back to the violation's.
    Returns None when deductions are disabled or nobody owns the cost, and
    the existing row when the escalation already has one. Does not commit.
    """
    if not settings.SALARY_DEDUCTIONS_ENABLED:
        return None

    user_id = escalation.created_by or escalation.violation.created_by
    if user_id is None:
        logger.warning(
            "Escalation %s has no owner; salary deduction skipped", escalation.id
        )
        return None

    existing = db.execute(
        select(SalaryDeduction).where(SalaryDeduction.escalation_request_id == escalation.id)
    ).scalar_one_or_none()
    if existing is not None:
        return existing

    now = _now(now)
    rule = DEDUCTION_RULES[reason]
    overage = Decimal(escalation.overage_amount)
    amount = calculate_amount(overage, reason)

    deduction = SalaryDeduction(
        user_id=user_id,
        threshold_violation_id=escalation.threshold_violation_id,
        escalation_request_id=escalation.id,
        amount=amount,
        reason=reason.value,
        description=_DESCRIPTIONS[reason].format(overage=overage),
        status=DeductionStatus.PENDING.value,
        deduction_date=now + timedelta(days=rule.delay_days),
        context={
            "escalation_id": escalation.id,
            "escalation_type": escalation.escalation_type,
            "amount_requested": float(escalation.amount_requested),
            "threshold_limit": float(escalation.threshold_limit),
            "overage_amount": float(overage),
            "rule": {
                "percentage": float(rule.percentage),
                "minimum": float(rule.minimum),
                "maximum": float(rule.maximum),
                "delay_days": rule.delay_days,
            },
        },
        created_at=now,
    )
    db.add(deduction)
    db.flush()

    audit_service.log_system_event(
        db,
        SystemLogType.SALARY_DEDUCTION_CREATED,
        f"Salary deduction {deduction.id} of {amount} raised for escalation {escalation.id}",
        context={
            "deduction_id": deduction.id,
            "user_id": user_id,
            "escalation_id": escalation.id,
            "reason": reason.value,
            "amount": float(amount),
        },
        level=LogLevel.WARNING,
    )
    logger.info(
        "Salary deduction %s created: user=%s escalation=%s reason=%s amount=%s",
        deduction.id,
        user_id,
        escalation.id,
        reason.value,
        amount,
    )
    return deduction


def _settle_one(
    db: Session,
    deduction_id: int,
    target: DeductionStatus,
    *,
    actor_id: int | None,
    notes: str | None,
    now: datetime,
) -> bool:
    """Move a pending deduction to ``target``. Does not commit."""
    values: dict[str, Any] = {"status": target.value, "settled_by": actor_id}
    if target is DeductionStatus.PROCESSED:
        values["processed_at"] = now
    else:
        values["cancelled_at"] = now
    if notes is not None:
        values["notes"] = notes

    result = db.execute(
        update(SalaryDeduction)
        .where(
            SalaryDeduction.id == deduction_id,
            SalaryDeduction.status == DeductionStatus.PENDING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    audit_service.log_system_event(
        db,
        _SETTLE_LOG_TYPES[target],
        f"Salary deduction {deduction_id} {target.value}",
        user_id=actor_id,
        context={"deduction_id": deduction_id, "notes": notes},
    )
    return True


def _settle(
    db: Session,
    deduction_id: int,
    target: DeductionStatus,
    actor_id: int,
    notes: str | None,
    now: datetime | None,
) -> SalaryDeduction:
    deduction = get_deduction(db, deduction_id)
    if deduction is None:
        raise DeductionNotFound(f"Salary deduction {deduction_id} not found")

    if not _settle_one(db, deduction_id, target, actor_id=actor_id, notes=notes, now=_now(now)):
        db.rollback()
        current = db.execute(
            select(SalaryDeduction.status).where(SalaryDeduction.id == deduction_id)
        ).scalar_one()
        raise DeductionAlreadySettled(
            f"Salary deduction {deduction_id} is already {current}"
        )

    db.commit()
    db.refresh(deduction)
    logger.info(
        "Salary deduction %s %s by user %s", deduction_id, target.value, actor_id
    )
    return deduction


def process_deduction(
    db: Session,
    deduction_id: int,
    actor_id: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> SalaryDeduction:
    """Settle a pending deduction now, ahead of its deduction date if need be."""
    return _settle(db, deduction_id, DeductionStatus.PROCESSED, actor_id, notes, now)


def cancel_deduction(
    db: Session,
    deduction_id: int,
    actor_id: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> SalaryDeduction:
    return _settle(db, deduction_id, DeductionStatus.CANCELLED, actor_id, notes, now)


def process_due_deductions(db: Session, now: datetime | None = None) -> DeductionSweepResult:
    """
    Process every pending deduction whose date has passed.

    Each row is settled and committed on its own; a failing row is rolled
    back, logged and reported without stopping the rest. Rows cancelled or
    processed between selection and update are counted as skipped.
    """
    now = _now(now)
    due = db.execute(
        select(SalaryDeduction.id, SalaryDeduction.amount)
        .where(
            SalaryDeduction.status == DeductionStatus.PENDING.value,
            SalaryDeduction.deduction_date <= now,
        )
        .order_by(SalaryDeduction.deduction_date.asc(), SalaryDeduction.id.asc())
    ).all()

    result = DeductionSweepResult()
    for deduction_id, amount in due:
        try:
            settled = _settle_one(
                db, deduction_id, DeductionStatus.PROCESSED, actor_id=None, notes=None, now=now
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception("Processing failed for salary deduction %s", deduction_id)
            result.errors.append({"deduction_id": deduction_id, "error": str(e)})
            continue
        if settled:
            result.processed_ids.append(deduction_id)
            result.total_amount += Decimal(amount)
        else:
            result.skipped_count += 1

    logger.info(
        "Salary deduction sweep: processed=%s skipped=%s errors=%s total=%s",
        result.processed_count,
        result.skipped_count,
        result.error_count,
        result.total_amount,
    )
    return result


def list_deductions(
    db: Session,
    pagination: PaginationParams,
    *,
    status: DeductionStatus | None = None,
    user_id: int | None = None,
    overdue: bool = False,
    now: datetime | None = None,
) -> tuple[list[SalaryDeduction], int]:
    """Paginated deductions, newest first. ``overdue`` keeps pending rows past their date."""
    filters = []
    if status:
        filters.append(SalaryDeduction.status == status.value)
    if user_id is not None:
        filters.append(SalaryDeduction.user_id == user_id)
    if overdue:
        filters.append(SalaryDeduction.status == DeductionStatus.PENDING.value)
        filters.append(SalaryDeduction.deduction_date <= _now(now))

    stmt = (
        select(SalaryDeduction)
        .where(*filters)
        .order_by(SalaryDeduction.created_at.desc(), SalaryDeduction.id.desc())
    )
    return paginate_select(db, stmt, pagination)


def deduction_summary(db: Session, now: datetime | None = None) -> dict:
    rows = db.execute(
        select(
            SalaryDeduction.status,
            func.count(SalaryDeduction.id),
            func.coalesce(func.sum(SalaryDeduction.amount), 0),
        ).group_by(SalaryDeduction.status)
    ).all()
    counts = {status: count for status, count, _ in rows}
    amounts = {status: float(total) for status, _, total in rows}

    overdue = db.execute(
        select(func.count(SalaryDeduction.id)).where(
            SalaryDeduction.status == DeductionStatus.PENDING.value,
            SalaryDeduction.deduction_date <= _now(now),
        )
    ).scalar_one()
    return {
        "total": sum(counts.values()),
        "pending": counts.get(DeductionStatus.PENDING.value, 0),
        "processed": counts.get(DeductionStatus.PROCESSED.value, 0),
        "cancelled": counts.get(DeductionStatus.CANCELLED.value, 0),
        "overdue": overdue,
        "pending_amount": amounts.get(DeductionStatus.PENDING.value, 0.0),
        "processed_amount": amounts.get(DeductionStatus.PROCESSED.value, 0.0),
    }
