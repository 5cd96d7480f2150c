"""Tests for salary deductions raised by rejected and expired escalations."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from costguard.core.config import settings
from costguard.db.enums import DeductionReason, DeductionStatus, Role, SystemLogType
from costguard.db.models import SalaryDeduction, SystemLog
from costguard.services import audit_service, deduction_service, escalation_service
from costguard.services.deduction_service import DeductionAlreadySettled, DeductionNotFound
from costguard.utils.datetime_utils import ensure_utc
from costguard.utils.pagination import PaginationParams


def _deductions(db) -> list[SalaryDeduction]:
    return list(db.execute(select(SalaryDeduction).order_by(SalaryDeduction.id)).scalars().all())


def _status(db, deduction_id: int) -> str:
    return db.execute(
        select(SalaryDeduction.status).where(SalaryDeduction.id == deduction_id)
    ).scalar_one()


# =============================================================================
# Amount rules
# =============================================================================

@pytest.mark.parametrize(
    "reason,overage,expected",
    [
        (DeductionReason.REJECTED_ESCALATION, "10000", "5000.00"),
        (DeductionReason.REJECTED_ESCALATION, "200", "500.00"),
        (DeductionReason.REJECTED_ESCALATION, "80000", "25000.00"),
        (DeductionReason.REJECTED_ESCALATION, "1001.11", "500.56"),
        (DeductionReason.EXPIRED_ESCALATION, "10000", "7500.00"),
        (DeductionReason.EXPIRED_ESCALATION, "500", "750.00"),
        (DeductionReason.EXPIRED_ESCALATION, "100000", "37500.00"),
    ],
)
def test_calculate_amount_clamps_share_of_overage(reason, overage, expected):
    assert deduction_service.calculate_amount(Decimal(overage), reason) == Decimal(expected)


# =============================================================================
# Creation from escalation outcomes
# =============================================================================

def test_rejection_raises_deduction_for_cost_owner(db, now, make_violation, staff_user, fc_user):
    violation = make_violation(110000, 100000, created_by=staff_user.id)
    escalation = escalation_service.create_escalation(
        db, violation, created_by=staff_user.id, now=now
    )

    escalation_service.record_decision(
        db, escalation.id, fc_user.id, Role.FC, "rejected", reason="No receipt", now=now
    )

    [deduction] = _deductions(db)
    assert deduction.user_id == staff_user.id
    assert deduction.escalation_request_id == escalation.id
    assert deduction.threshold_violation_id == violation.id
    assert deduction.reason == DeductionReason.REJECTED_ESCALATION.value
    assert deduction.status == DeductionStatus.PENDING.value
    assert deduction.amount == Decimal("5000.00")
    assert ensure_utc(deduction.deduction_date) == now + timedelta(days=15)
    assert deduction.context["rule"]["percentage"] == 50.0
    assert "10,000.00" in deduction.description

    created = db.execute(
        select(SystemLog).where(SystemLog.type == SystemLogType.SALARY_DEDUCTION_CREATED.value)
    ).scalar_one()
    assert created.context["user_id"] == staff_user.id


def test_deduction_falls_back_to_violation_owner(db, now, make_violation, staff_user, fc_user):
    violation = make_violation(110000, 100000, created_by=staff_user.id)
    escalation = escalation_service.create_escalation(db, violation, now=now)

    escalation_service.record_decision(db, escalation.id, fc_user.id, Role.FC, "rejected", now=now)

    assert [d.user_id for d in _deductions(db)] == [staff_user.id]


def test_lazy_expiry_raises_expired_deduction(db, now, make_violation, staff_user, fc_user):
    violation = make_violation(110000, 100000, created_by=staff_user.id)
    escalation = escalation_service.create_escalation(db, violation, now=now)
    later = now + timedelta(hours=49)

    with pytest.raises(escalation_service.AlreadyExpired):
        escalation_service.record_decision(db, escalation.id, fc_user.id, Role.FC, "approved", now=later)

    [deduction] = _deductions(db)
    assert deduction.reason == DeductionReason.EXPIRED_ESCALATION.value
    assert deduction.amount == Decimal("7500.00")
    assert ensure_utc(deduction.deduction_date) == later + timedelta(days=7)


def test_expiry_sweep_raises_one_deduction_per_escalation(db, now, make_violation, staff_user):
    escalation_service.create_escalation(
        db, make_violation(300000, 100000, created_by=staff_user.id), now=now
    )
    later = now + timedelta(hours=25)

    escalation_service.expire_stale_escalations(db, now=later)
    escalation_service.expire_stale_escalations(db, now=later)

    [deduction] = _deductions(db)
    assert deduction.reason == DeductionReason.EXPIRED_ESCALATION.value
    assert deduction.amount == Decimal("37500.00")


def test_approval_raises_no_deduction(db, now, make_violation, staff_user, fc_user):
    violation = make_violation(110000, 100000, created_by=staff_user.id)
    escalation = escalation_service.create_escalation(db, violation, now=now)

    escalation_service.record_decision(db, escalation.id, fc_user.id, Role.FC, "approved", now=now)

    assert _deductions(db) == []


def test_cost_without_owner_is_skipped(db, now, make_violation, fc_user, caplog):
    violation = make_violation(110000, 100000)
    escalation = escalation_service.create_escalation(db, violation, now=now)

    with caplog.at_level("WARNING", logger="costguard.services.deduction_service"):
        escalation_service.record_decision(db, escalation.id, fc_user.id, Role.FC, "rejected", now=now)

    assert _deductions(db) == []
    assert "no owner" in caplog.text


def test_deductions_can_be_switched_off(db, now, make_violation, staff_user, fc_user, monkeypatch):
    monkeypatch.setattr(settings, "SALARY_DEDUCTIONS_ENABLED", False)
    violation = make_violation(110000, 100000, created_by=staff_user.id)
    escalation = escalation_service.create_escalation(db, violation, now=now)

    outcome = escalation_service.record_decision(
        db, escalation.id, fc_user.id, Role.FC, "rejected", now=now
    )

    assert outcome.final_outcome == "rejected"
    assert _deductions(db) == []


# =============================================================================
# Manual settlement
# =============================================================================

def test_process_and_cancel_pending_deductions(db, now, make_deduction, staff_user, fc_user):
    to_process = make_deduction(staff_user)
    to_cancel = make_deduction(staff_user)

    processed = deduction_service.process_deduction(
        db, to_process.id, fc_user.id, notes="Early payroll run", now=now
    )
    cancelled = deduction_service.cancel_deduction(
        db, to_cancel.id, fc_user.id, notes="Receipt found", now=now
    )

    assert processed.status == DeductionStatus.PROCESSED.value
    assert ensure_utc(processed.processed_at) == now
    assert processed.settled_by == fc_user.id
    assert processed.notes == "Early payroll run"
    assert cancelled.status == DeductionStatus.CANCELLED.value
    assert ensure_utc(cancelled.cancelled_at) == now

    log_types = db.execute(select(SystemLog.type).order_by(SystemLog.id)).scalars().all()
    assert log_types == [
        SystemLogType.SALARY_DEDUCTION_PROCESSED.value,
        SystemLogType.SALARY_DEDUCTION_CANCELLED.value,
    ]


@pytest.mark.parametrize("settled", [DeductionStatus.PROCESSED, DeductionStatus.CANCELLED])
def test_settled_deduction_cannot_be_settled_again(db, make_deduction, staff_user, fc_user, settled):
    deduction = make_deduction(staff_user, status=settled)

    with pytest.raises(DeductionAlreadySettled):
        deduction_service.process_deduction(db, deduction.id, fc_user.id)
    with pytest.raises(DeductionAlreadySettled):
        deduction_service.cancel_deduction(db, deduction.id, fc_user.id)

    assert _status(db, deduction.id) == settled.value


def test_unknown_deduction(db, fc_user):
    with pytest.raises(DeductionNotFound):
        deduction_service.process_deduction(db, 404, fc_user.id)


# =============================================================================
# Due sweep
# =============================================================================

def test_due_sweep_processes_only_due_pending_rows(db, now, make_deduction, staff_user):
    due = make_deduction(staff_user, amount="500", due_in=timedelta(days=-1))
    also_due = make_deduction(staff_user, amount="750", due_in=timedelta(0))
    make_deduction(staff_user, due_in=timedelta(days=3))
    cancelled = make_deduction(
        staff_user, status=DeductionStatus.CANCELLED, due_in=timedelta(days=-2)
    )

    first = deduction_service.process_due_deductions(db, now=now)
    second = deduction_service.process_due_deductions(db, now=now)

    assert first.processed_ids == [due.id, also_due.id]
    assert first.total_amount == Decimal("1250")
    assert first.errors == []
    assert second.processed_count == 0
    assert _status(db, cancelled.id) == DeductionStatus.CANCELLED.value


def test_due_sweep_continues_past_a_failing_row(db, now, make_deduction, staff_user, monkeypatch):
    first = make_deduction(staff_user, due_in=timedelta(days=-3))
    broken = make_deduction(staff_user, due_in=timedelta(days=-2))
    last = make_deduction(staff_user, due_in=timedelta(days=-1))

    original = audit_service.log_system_event

    def flaky(db, log_type, message, **kwargs):
        if (kwargs.get("context") or {}).get("deduction_id") == broken.id:
            raise RuntimeError("audit write failed")
        return original(db, log_type, message, **kwargs)

    monkeypatch.setattr(audit_service, "log_system_event", flaky)

    result = deduction_service.process_due_deductions(db, now=now)

    assert result.processed_ids == [first.id, last.id]
    assert result.errors == [{"deduction_id": broken.id, "error": "audit write failed"}]
    assert _status(db, broken.id) == DeductionStatus.PENDING.value


# =============================================================================
# Queries
# =============================================================================

def test_list_deductions_filters_and_summary(db, now, make_user, make_deduction, staff_user):
    other = make_user(Role.STAFF)
    overdue = make_deduction(staff_user, amount="1000", due_in=timedelta(days=-1))
    make_deduction(staff_user, amount="2000")
    make_deduction(other, amount="3000", status=DeductionStatus.PROCESSED)

    by_user, by_user_total = deduction_service.list_deductions(
        db, PaginationParams(page=1, per_page=20), user_id=staff_user.id
    )
    late, late_total = deduction_service.list_deductions(
        db, PaginationParams(page=1, per_page=20), overdue=True, now=now
    )
    processed, _ = deduction_service.list_deductions(
        db, PaginationParams(page=1, per_page=20), status=DeductionStatus.PROCESSED
    )

    assert by_user_total == 2
    assert {d.user_id for d in by_user} == {staff_user.id}
    assert late_total == 1
    assert late[0].id == overdue.id
    assert [d.user_id for d in processed] == [other.id]

    summary = deduction_service.deduction_summary(db, now=now)
    assert summary == {
        "total": 3,
        "pending": 2,
        "processed": 1,
        "cancelled": 0,
        "overdue": 1,
        "pending_amount": 3000.0,
        "processed_amount": 3000.0,
    }
