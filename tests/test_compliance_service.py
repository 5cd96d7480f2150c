"""Tests for delivery-agent reminders and compliance escalations."""

import logging
from datetime import date

import pytest
from sqlalchemy import select

from costguard.db.enums import CompliancePriority, PayoutStatus, Role, SystemLogType
from costguard.db.models import SystemLog
from costguard.services import audit_service, compliance_service
from costguard.services.compliance_service import OrderNotFound


def _logs(db, log_type: SystemLogType) -> list[SystemLog]:
    return list(
        db.execute(
            select(SystemLog).where(SystemLog.type == log_type.value).order_by(SystemLog.id)
        ).scalars().all()
    )


def test_send_reminder_reports_missing_agents(db, make_agent, fc_user):
    first = make_agent(name="Ada")
    second = make_agent(name="Bayo")

    result = compliance_service.send_reminder(
        db, [first.id, 999, second.id], target_date=date(2026, 3, 5), actor_id=fc_user.id
    )

    assert result.sent_count == 2
    assert result.errors == [{"delivery_agent_id": 999, "error": "Agent not found"}]
    assert [n["name"] for n in result.sent_notifications] == ["Ada", "Bayo"]

    logs = _logs(db, SystemLogType.DA_REMINDER)
    assert len(logs) == 2
    assert logs[0].context["message"] == compliance_service.DEFAULT_REMINDER_MESSAGE
    assert logs[0].context["target_date"] == "2026-03-05"
    assert logs[0].user_id == fc_user.id


def test_send_reminder_custom_message_and_default_date(db, make_agent):
    agent = make_agent()

    result = compliance_service.send_reminder(db, [agent.id], message="Upload POS slip")

    assert result.target_date == compliance_service.utcnow().date()
    assert _logs(db, SystemLogType.DA_REMINDER)[0].context["message"] == "Upload POS slip"


def test_send_reminder_isolates_write_failures(db, make_agent, monkeypatch):
    good = make_agent()
    bad = make_agent()
    original = audit_service.log_system_event

    def flaky(db, log_type, message, **kwargs):
        if kwargs.get("context", {}).get("delivery_agent_id") == bad.id:
            raise RuntimeError("log table unavailable")
        return original(db, log_type, message, **kwargs)

    monkeypatch.setattr(audit_service, "log_system_event", flaky)

    result = compliance_service.send_reminder(db, [bad.id, good.id])

    assert result.sent_count == 1
    assert result.errors == [{"delivery_agent_id": bad.id, "error": "log table unavailable"}]


def test_trigger_escalation_critical(db, make_agent, make_order, make_payout, compliance_user, caplog):
    agent = make_agent(name="Chidi")
    order = make_order(agent, customer_name="Acme Stores")
    payout = make_payout(agent, order=order, status=PayoutStatus.ON_HOLD)

    with caplog.at_level(logging.WARNING, logger="costguard.services.compliance_service"):
        result = compliance_service.trigger_escalation(
            db,
            order.id,
            reason="Photo evidence missing",
            priority=CompliancePriority.CRITICAL,
            actor_id=compliance_user.id,
            actor_role=Role.COMPLIANCE,
        )

    assert result["level"] == "critical"
    assert result["priority"] == "critical"
    assert result["order_details"]["order_number"] == order.order_number
    assert result["order_details"]["delivery_agent"] == "Chidi"
    assert result["order_details"]["payout_id"] == payout.id
    assert result["order_details"]["payout_status"] == "on_hold"
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    entry = _logs(db, SystemLogType.COMPLIANCE_ESCALATION)[0]
    assert entry.id == result["escalation_id"]
    assert entry.level == "critical"
    assert entry.context["escalated_by_role"] == "compliance"


@pytest.mark.parametrize("priority", [CompliancePriority.LOW, CompliancePriority.HIGH])
def test_trigger_escalation_non_critical_logs_warning(db, make_order, priority, caplog):
    order = make_order()

    with caplog.at_level(logging.WARNING, logger="costguard.services.compliance_service"):
        result = compliance_service.trigger_escalation(
            db, order.id, reason="Late delivery", priority=priority
        )

    assert result["level"] == "warning"
    assert result["order_details"]["payout_id"] is None
    assert result["order_details"]["delivery_agent"] is None
    records = [r for r in caplog.records if r.name == "costguard.services.compliance_service"]
    assert [r.levelno for r in records] == [logging.WARNING]


def test_trigger_escalation_unknown_order(db):
    with pytest.raises(OrderNotFound):
        compliance_service.trigger_escalation(
            db, 12345, reason="x", priority=CompliancePriority.MEDIUM
        )
    assert _logs(db, SystemLogType.COMPLIANCE_ESCALATION) == []
