"""Tests for cost validation, violation recording and threshold statistics."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from costguard.core.config import settings
from costguard.core.threshold_policy import CostThresholdPolicy, InvalidCostType
from costguard.db.enums import CostType, Role, SystemLogType, ViolationStatus
from costguard.db.models import EscalationRequest, SystemLog, ThresholdViolation
from costguard.services import escalation_service, threshold_service
from costguard.utils.datetime_utils import utcnow
from costguard.utils.pagination import PaginationParams


@pytest.fixture
def policy() -> CostThresholdPolicy:
    return CostThresholdPolicy()


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_cost_within_limit_records_nothing(db, policy, fc_user):
    result = threshold_service.validate_cost(
        db, policy, cost_type="expense", amount=Decimal("9999"), user_id=fc_user.id
    )

    assert result.within_limit is True
    assert result.violation is None
    assert result.escalation is None
    assert _count(db, ThresholdViolation) == 0


def test_cost_over_limit_opens_violation_and_escalation(db, now, policy, fc_user):
    result = threshold_service.validate_cost(
        db,
        policy,
        cost_type="bonus",
        amount=Decimal("13000"),
        user_id=fc_user.id,
        reference_type="order",
        reference_id=7,
        now=now,
    )

    violation = result.violation
    assert result.within_limit is False
    assert violation.status == ViolationStatus.BLOCKED.value
    assert violation.overage_amount == Decimal("3000")
    assert violation.reference_type == "order"
    assert violation.created_by == fc_user.id

    escalation = result.escalation
    assert escalation.threshold_violation_id == violation.id
    assert escalation.approval_required == ["fc", "gm"]
    assert escalation.priority == "medium"

    types = db.execute(select(SystemLog.type).order_by(SystemLog.id)).scalars().all()
    assert types == [
        SystemLogType.THRESHOLD_VIOLATION.value,
        SystemLogType.ESCALATION_CREATED.value,
    ]


def test_per_unit_logistics_uses_quantity(db, policy):
    result = threshold_service.validate_cost(
        db, policy, cost_type="logistics", amount=Decimal("350"), context={"quantity": 3}
    )

    assert result.violation.threshold_limit == Decimal("300")
    assert result.violation.context == {"quantity": 3}
    assert result.escalation.priority == "medium"


def test_auto_escalation_can_be_switched_off(db, policy, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_ESCALATE_VIOLATIONS", False)

    result = threshold_service.validate_cost(db, policy, cost_type="expense", amount=30000)

    assert result.violation is not None
    assert result.escalation is None
    assert _count(db, EscalationRequest) == 0


def test_invalid_cost_type_writes_nothing(db, policy):
    with pytest.raises(InvalidCostType):
        threshold_service.validate_cost(db, policy, cost_type="travel", amount=10)

    assert _count(db, ThresholdViolation) == 0
    assert _count(db, SystemLog) == 0


def test_statistics_compliance_rate(db, now, policy, fc_user):
    assert threshold_service.get_statistics(db)["compliance_rate"] == 100.0

    first = threshold_service.validate_cost(db, policy, cost_type="expense", amount=11000, now=now)
    threshold_service.validate_cost(db, policy, cost_type="bonus", amount=30000, now=now)
    threshold_service.validate_cost(db, policy, cost_type="logistics", amount=500, now=now)
    escalation_service.record_decision(
        db, first.escalation.id, fc_user.id, Role.FC, "approved", now=now
    )

    stats = threshold_service.get_statistics(db)

    assert stats["violations"]["total"] == 3
    assert stats["violations"]["approved"] == 1
    assert stats["violations"]["blocked"] == 2
    assert stats["violations"]["by_cost_type"] == {"logistics": 1, "expense": 1, "bonus": 1}
    assert stats["violations"]["total_overage"] == pytest.approx(1000 + 20000 + 400)
    assert stats["compliance_rate"] == pytest.approx(33.33)
    assert stats["escalations"]["approved"] == 1
    assert len(stats["recent_violations"]) == 3


def test_urgent_items(db, make_violation):
    current = utcnow()
    # overage 25000 on a 10000 limit: more than double
    severe = make_violation(35000, 10000)
    make_violation(12000, 10000)
    expiring_violation = make_violation(30000, 10000)

    soon = escalation_service.create_escalation(
        db, expiring_violation, now=current - timedelta(hours=20)
    )
    escalation_service.create_escalation(db, severe, now=current)

    urgent = threshold_service.get_urgent_items(db, now=current)

    assert [e.id for e in urgent["expiring_escalations"]] == [soon.id]
    assert [v.id for v in urgent["critical_violations"]] == [severe.id, expiring_violation.id]
    assert urgent["total_urgent"] == 3


def test_list_violations_filters(db, policy):
    threshold_service.validate_cost(db, policy, cost_type="expense", amount=11000)
    threshold_service.validate_cost(db, policy, cost_type="bonus", amount=11000)

    items, total = threshold_service.list_violations(
        db, PaginationParams(page=1, per_page=10), cost_type=CostType.BONUS
    )

    assert total == 1
    assert items[0].cost_type == "bonus"
