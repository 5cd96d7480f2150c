from __future__ import annotations

from datetime import timedelta

import pytest

from costguard.db.enums import DeductionStatus, EscalationStatus
from costguard.utils.datetime_utils import utcnow


@pytest.fixture
def internal_session(db, monkeypatch):
    from costguard.core.config import settings
    from costguard.routers import internal as internal_router

    monkeypatch.setattr(settings, "INTERNAL_SECRET", "secret")

    class _TestSession:
        def __enter__(self):
            return db

        def __exit__(self, exc_type, exc, tb):
            return False

    monkeypatch.setattr(internal_router, "SessionLocal", lambda: _TestSession())
    return db


@pytest.mark.asyncio
async def test_internal_sweep_requires_secret(client, monkeypatch):
    from costguard.core.config import settings

    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")
    unconfigured = await client.post(
        "/internal/scheduled/payout-auto-revert", headers={"X-Internal-Secret": "anything"}
    )
    assert unconfigured.status_code == 501

    monkeypatch.setattr(settings, "INTERNAL_SECRET", "secret")
    wrong = await client.post(
        "/internal/scheduled/payout-auto-revert", headers={"X-Internal-Secret": "nope"}
    )
    assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_payout_auto_revert_sweep(client, internal_session, make_agent, make_payout):
    agent = make_agent()
    make_payout(agent, created_at=utcnow() - timedelta(hours=50))
    make_payout(agent, created_at=utcnow() - timedelta(hours=2))

    first = await client.post(
        "/internal/scheduled/payout-auto-revert", headers={"X-Internal-Secret": "secret"}
    )
    second = await client.post(
        "/internal/scheduled/payout-auto-revert", headers={"X-Internal-Secret": "secret"}
    )

    assert first.status_code == 200
    assert first.json() == {
        "reverted_count": 1,
        "skipped_count": 0,
        "error_count": 0,
        "errors": [],
        "cutoff_hours": 48,
    }
    assert second.json()["reverted_count"] == 0


@pytest.mark.asyncio
async def test_escalation_expiry_sweep(client, internal_session, make_violation):
    from costguard.services import escalation_service

    violation = make_violation(300000, 100000)
    escalation = escalation_service.create_escalation(
        internal_session, violation, now=utcnow() - timedelta(hours=30)
    )

    response = await client.post(
        "/internal/scheduled/escalation-expiry", headers={"X-Internal-Secret": "secret"}
    )

    assert response.status_code == 200
    assert response.json() == {"expired_count": 1}
    internal_session.refresh(escalation)
    assert escalation.status == EscalationStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_salary_deduction_sweep(client, internal_session, make_deduction, staff_user):
    due = make_deduction(staff_user, amount="750", due_in=timedelta(days=-20))
    make_deduction(staff_user, due_in=timedelta(days=3650))

    first = await client.post(
        "/internal/scheduled/salary-deductions", headers={"X-Internal-Secret": "secret"}
    )
    second = await client.post(
        "/internal/scheduled/salary-deductions", headers={"X-Internal-Secret": "secret"}
    )

    assert first.status_code == 200
    assert first.json() == {
        "processed_count": 1,
        "skipped_count": 0,
        "error_count": 0,
        "errors": [],
        "total_amount": 750.0,
    }
    assert second.json()["processed_count"] == 0
    internal_session.refresh(due)
    assert due.status == DeductionStatus.PROCESSED.value
