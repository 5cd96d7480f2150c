"""
Payout lifecycle service.

Every status change is a compare-and-swap ``UPDATE ... WHERE status IN
(...)``: if a concurrent writer (a human or the auto-revert sweep) moved the
payout first, the update matches zero rows and the caller gets
``InvalidPayoutTransition`` instead of a second terminal state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from costguard.core.config import settings
from costguard.core.exceptions import (
    AuthorizationError,
    DomainValidationError,
    NotFoundError,
    StateConflictError,
)
from costguard.db.enums import (
    PAYOUT_TRANSITIONS,
    ROLES_CAN_UNLOCK_PAYOUT,
    LogLevel,
    PayoutAction,
    PayoutStatus,
    Role,
    SystemLogType,
)
from costguard.db.models import DeliveryAgent, Payout, PayoutActionLog
from costguard.services import audit_service
from costguard.utils.datetime_utils import ensure_utc, hours_between, start_of_week, utcnow
from costguard.utils.pagination import PaginationParams, paginate_select

logger = logging.getLogger(__name__)

AUTO_REVERT_NOTE = "Automatically reverted after {hours} hours"

PENDING_CONFIRMATION_SORTS = {"created_at", "compliance_score", "zone"}


class PayoutNotFound(NotFoundError):
    pass


class InvalidPayoutTransition(StateConflictError):
    pass


class PayoutUnlockNotAllowed(AuthorizationError):
    pass


class InvalidAutoRevertConfig(DomainValidationError):
    pass


@dataclass
class AutoRevertResult:
    reverted_ids: list[int] = field(default_factory=list)
    skipped_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    cutoff_hours: int = 48

    @property
    def reverted_count(self) -> int:
        return len(self.reverted_ids)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def _now(now: datetime | None) -> datetime:
    return ensure_utc(now) if now else utcnow()


def _role_value(role: Role | str | None) -> str | None:
    if role is None:
        return None
    return role.value if isinstance(role, Role) else str(role)


def get_payout(db: Session, payout_id: int) -> Payout | None:
    return db.get(Payout, payout_id)


def aging_hours(payout: Payout, now: datetime | None = None) -> int:
    """Whole hours since the payout was created (never negative)."""
    return max(int(hours_between(payout.created_at, _now(now))), 0)


def _transition(
    db: Session,
    payout_id: int,
    action: PayoutAction,
    *,
    actor_id: int | None,
    actor_role: Role | str | None,
    note: str | None = None,
    values: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Payout:
    now = _now(now)
    sources, target = PAYOUT_TRANSITIONS[action]

    payout = get_payout(db, payout_id)
    if payout is None:
        raise PayoutNotFound(f"Payout {payout_id} not found")
    from_status = payout.status

    result = db.execute(
        update(Payout)
        .where(
            Payout.id == payout_id,
            Payout.status.in_([s.value for s in sources]),
        )
        .values(
            status=target.value,
            updated_at=now,
            last_action_by=actor_id,
            **(values or {}),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = db.execute(select(Payout.status).where(Payout.id == payout_id)).scalar_one()
        raise InvalidPayoutTransition(
            f"Cannot apply '{action.value}' to payout {payout_id} in status '{current}'"
        )

    audit_service.log_payout_action(
        db,
        payout_id,
        action,
        from_status=from_status,
        to_status=target.value,
        performed_by=actor_id,
        role=_role_value(actor_role),
        note=note,
    )
    db.commit()
    db.refresh(payout)

    logger.info(
        "Payout %s: %s -> %s (%s by user %s)",
        payout_id,
        from_status,
        target.value,
        action.value,
        actor_id,
    )
    return payout


def mark_intent(
    db: Session,
    payout_id: int,
    actor_id: int,
    actor_role: Role | str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Payout:
    """pending -> intent_marked."""
    return _transition(
        db, payout_id, PayoutAction.INTENT_MARKED,
        actor_id=actor_id, actor_role=actor_role, note=note, now=now,
    )


def approve(
    db: Session,
    payout_id: int,
    actor_id: int,
    actor_role: Role | str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Payout:
    """intent_marked -> approved. Locks the payout."""
    now = _now(now)
    return _transition(
        db, payout_id, PayoutAction.APPROVED,
        actor_id=actor_id, actor_role=actor_role, note=note, now=now,
        values={"approved_at": now, "locked_at": now},
    )


def reject(
    db: Session,
    payout_id: int,
    actor_id: int,
    reason: str,
    actor_role: Role | str | None = None,
    now: datetime | None = None,
) -> Payout:
    """intent_marked -> rejected. Locks the payout."""
    now = _now(now)
    return _transition(
        db, payout_id, PayoutAction.REJECTED,
        actor_id=actor_id, actor_role=actor_role, note=reason, now=now,
        values={"rejected_at": now, "locked_at": now, "rejection_reason": reason},
    )


def place_on_hold(
    db: Session,
    payout_id: int,
    actor_id: int,
    actor_role: Role | str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Payout:
    return _transition(
        db, payout_id, PayoutAction.ON_HOLD,
        actor_id=actor_id, actor_role=actor_role, note=note, now=now,
    )


def flag_for_investigation(
    db: Session,
    payout_id: int,
    actor_id: int,
    actor_role: Role | str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Payout:
    return _transition(
        db, payout_id, PayoutAction.UNDER_INVESTIGATION,
        actor_id=actor_id, actor_role=actor_role, note=note, now=now,
        values={"flagged": True},
    )


def release(
    db: Session,
    payout_id: int,
    actor_id: int,
    actor_role: Role | str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> Payout:
    """on_hold / under_investigation -> pending."""
    return _transition(
        db, payout_id, PayoutAction.RELEASED,
        actor_id=actor_id, actor_role=actor_role, note=note, now=now,
    )


def unlock(
    db: Session,
    payout_id: int,
    actor_id: int,
    actor_role: Role | str,
    reason: str,
    now: datetime | None = None,
) -> Payout:
    """
    Reopen a terminal payout (approved / rejected / auto_reverted) as pending.

    Only CEO and compliance may unlock. Decision timestamps are cleared; the
    action log keeps the history.
    """
    role = _role_value(actor_role)
    if role not in {r.value for r in ROLES_CAN_UNLOCK_PAYOUT}:
        raise PayoutUnlockNotAllowed(f"Role '{role}' cannot unlock payouts")
    return _transition(
        db, payout_id, PayoutAction.UNLOCKED,
        actor_id=actor_id, actor_role=role, note=reason, now=now,
        values={
            "locked_at": None,
            "approved_at": None,
            "rejected_at": None,
            "rejection_reason": None,
        },
    )


def _eligible_statuses(statuses: list[str] | None) -> list[str]:
    statuses = statuses or settings.auto_revert_statuses
    for status in statuses:
        if not PayoutStatus.has_value(status) or PayoutStatus(status).is_terminal:
            raise InvalidAutoRevertConfig(f"Status '{status}' cannot be auto-reverted")
    return list(statuses)


def _revert_one(
    db: Session,
    payout_id: int,
    statuses: list[str],
    cutoff: datetime,
    cutoff_hours: int,
    actor_id: int | None,
    now: datetime,
) -> bool:
    """Revert a single payout if it still matches the sweep filter. Does not commit."""
    from_status = db.execute(
        select(Payout.status).where(Payout.id == payout_id)
    ).scalar_one_or_none()

    result = db.execute(
        update(Payout)
        .where(
            Payout.id == payout_id,
            Payout.status.in_(statuses),
            Payout.created_at < cutoff,
            func.coalesce(Payout.updated_at, Payout.created_at) < cutoff,
        )
        .values(status=PayoutStatus.AUTO_REVERTED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    audit_service.log_payout_action(
        db,
        payout_id,
        PayoutAction.AUTO_REVERTED,
        from_status=from_status,
        to_status=PayoutStatus.AUTO_REVERTED.value,
        performed_by=actor_id,
        role="system" if actor_id is None else None,
        note=AUTO_REVERT_NOTE.format(hours=cutoff_hours),
    )
    return True


def auto_revert_stale(
    db: Session,
    cutoff_hours: int | None = None,
    *,
    actor_id: int | None = None,
    statuses: list[str] | None = None,
    now: datetime | None = None,
) -> AutoRevertResult:
    """
    Revert payouts left untouched past the cutoff.

    Each payout is reverted and committed on its own. A failure on one row is
    rolled back, logged and reported in ``errors`` without stopping the rest.
    Rows that changed between selection and update are skipped, not errors.
    Re-running finds nothing new, since reverted rows no longer match.
    """
    now = _now(now)
    if cutoff_hours is None:
        cutoff_hours = settings.PAYOUT_AUTO_REVERT_HOURS
    if cutoff_hours < 0:
        raise InvalidAutoRevertConfig("cutoff_hours must be zero or greater")
    statuses = _eligible_statuses(statuses)
    cutoff = now - timedelta(hours=cutoff_hours)

    candidate_ids = db.execute(
        select(Payout.id)
        .where(
            Payout.status.in_(statuses),
            Payout.created_at < cutoff,
            func.coalesce(Payout.updated_at, Payout.created_at) < cutoff,
        )
        .order_by(Payout.created_at.asc(), Payout.id.asc())
    ).scalars().all()

    result = AutoRevertResult(cutoff_hours=cutoff_hours)
    for payout_id in candidate_ids:
        try:
            reverted = _revert_one(db, payout_id, statuses, cutoff, cutoff_hours, actor_id, now)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception("Auto-revert failed for payout %s", payout_id)
            result.errors.append({"payout_id": payout_id, "error": str(e)})
            continue
        if reverted:
            result.reverted_ids.append(payout_id)
        else:
            result.skipped_count += 1

    if result.reverted_count or result.errors:
        audit_service.log_system_event(
            db,
            SystemLogType.PAYOUT_AUTO_REVERT,
            f"Auto-reverted {result.reverted_count} payouts ({result.error_count} errors)",
            user_id=actor_id,
            context={
                "cutoff_hours": cutoff_hours,
                "reverted_ids": result.reverted_ids,
                "error_count": result.error_count,
            },
            level=LogLevel.WARNING if result.errors else LogLevel.INFO,
        )
        db.commit()

    logger.info(
        "Payout auto-revert: reverted=%s skipped=%s errors=%s cutoff_hours=%s",
        result.reverted_count,
        result.skipped_count,
        result.error_count,
        cutoff_hours,
    )
    return result


def list_pending_confirmations(
    db: Session,
    pagination: PaginationParams,
    *,
    zone: str | None = None,
    flagged: bool | None = None,
    aging_min: int | None = None,
    sort: str = "created_at",
    now: datetime | None = None,
) -> tuple[list[Payout], int]:
    """
    Payouts with intent marked that still await a final decision.

    Only unlocked, undecided payouts for agents eligible for their next
    payout are listed. ``aging_min`` keeps payouts at least that many hours old.
    """
    now = _now(now)
    if sort not in PENDING_CONFIRMATION_SORTS:
        raise DomainValidationError(
            f"sort must be one of: {', '.join(sorted(PENDING_CONFIRMATION_SORTS))}"
        )

    stmt = (
        select(Payout)
        .join(DeliveryAgent, Payout.delivery_agent_id == DeliveryAgent.id)
        .where(
            Payout.status == PayoutStatus.INTENT_MARKED.value,
            Payout.locked_at.is_(None),
            Payout.approved_at.is_(None),
            Payout.rejected_at.is_(None),
            DeliveryAgent.eligible_for_next_payout.is_(True),
        )
        .options(selectinload(Payout.delivery_agent), selectinload(Payout.last_actor))
    )
    if zone:
        stmt = stmt.where(DeliveryAgent.zone == zone)
    if flagged is not None:
        stmt = stmt.where(Payout.flagged.is_(flagged))
    if aging_min is not None:
        stmt = stmt.where(Payout.created_at <= now - timedelta(hours=aging_min))

    order_column = {
        "created_at": Payout.created_at,
        "compliance_score": Payout.compliance_score,
        "zone": DeliveryAgent.zone,
    }[sort]
    stmt = stmt.order_by(order_column.desc(), Payout.id.desc())
    return paginate_select(db, stmt, pagination)


def get_payout_metrics(db: Session, now: datetime | None = None) -> dict:
    """This week's payout outcomes plus the current aging backlog."""
    now = _now(now)
    week_start = start_of_week(now)
    cutoff = now - timedelta(hours=settings.PAYOUT_AUTO_REVERT_HOURS)

    def _count(*filters) -> int:
        return db.execute(select(func.count(Payout.id)).where(*filters)).scalar_one()

    def _actions_this_week(action: PayoutAction) -> int:
        return db.execute(
            select(func.count(PayoutActionLog.id)).where(
                PayoutActionLog.action == action.value,
                PayoutActionLog.created_at >= week_start,
            )
        ).scalar_one()

    return {
        "week_start": week_start,
        "created_this_week": _count(Payout.created_at >= week_start),
        "approved_this_week": _count(Payout.approved_at >= week_start),
        "rejected_this_week": _count(Payout.rejected_at >= week_start),
        "auto_reverted_this_week": _actions_this_week(PayoutAction.AUTO_REVERTED),
        "pending": _count(Payout.status == PayoutStatus.PENDING.value),
        "awaiting_confirmation": _count(Payout.status == PayoutStatus.INTENT_MARKED.value),
        "on_hold": _count(Payout.status == PayoutStatus.ON_HOLD.value),
        "under_investigation": _count(Payout.status == PayoutStatus.UNDER_INVESTIGATION.value),
        "aging_over_cutoff": _count(
            Payout.status == PayoutStatus.PENDING.value,
            Payout.created_at < cutoff,
        ),
        "cutoff_hours": settings.PAYOUT_AUTO_REVERT_HOURS,
    }


def list_payout_actions(db: Session, payout_id: int) -> list[PayoutActionLog]:
    if get_payout(db, payout_id) is None:
        raise PayoutNotFound(f"Payout {payout_id} not found")
    return list(
        db.execute(
            select(PayoutActionLog)
            .where(PayoutActionLog.payout_id == payout_id)
            .order_by(PayoutActionLog.created_at.asc(), PayoutActionLog.id.asc())
        ).scalars().all()
    )
