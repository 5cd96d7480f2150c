"""API tests for /deductions endpoints."""

import pytest

from costguard.db.enums import DeductionStatus


@pytest.mark.asyncio
async def test_rejected_cost_shows_up_as_pending_deduction(
    client, staff_user, fc_user, auth_headers
):
    created = await client.post(
        "/thresholds/validate-cost",
        json={"type": "expense", "amount": 11000},
        headers=auth_headers(staff_user),
    )
    escalation_id = created.json()["escalation"]["id"]

    rejected = await client.post(
        f"/thresholds/escalations/{escalation_id}/approve-or-reject",
        json={"decision": "rejected", "reason": "Not pre-approved"},
        headers=auth_headers(fc_user),
    )
    assert rejected.status_code == 200

    response = await client.get("/deductions", headers=auth_headers(fc_user))

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    [item] = data["items"]
    assert item["user_id"] == staff_user.id
    assert item["escalation_request_id"] == escalation_id
    assert item["reason"] == "rejected_escalation"
    assert item["status"] == "pending"
    assert item["amount"] == 500.0
    assert data["summary"]["pending"] == 1
    assert data["summary"]["overdue"] == 0


@pytest.mark.asyncio
async def test_list_filters(client, make_deduction, staff_user, gm_user, auth_headers):
    make_deduction(staff_user)
    make_deduction(gm_user, status=DeductionStatus.CANCELLED)

    cancelled = await client.get(
        "/deductions", params={"status": "cancelled"}, headers=auth_headers(gm_user)
    )
    mine = await client.get(
        "/deductions", params={"user_id": staff_user.id}, headers=auth_headers(gm_user)
    )
    bad_status = await client.get(
        "/deductions", params={"status": "paid"}, headers=auth_headers(gm_user)
    )

    assert [d["user_id"] for d in cancelled.json()["items"]] == [gm_user.id]
    assert [d["user_id"] for d in mine.json()["items"]] == [staff_user.id]
    assert bad_status.status_code == 422


@pytest.mark.asyncio
async def test_staff_cannot_browse_deductions(client, staff_user, auth_headers):
    response = await client.get("/deductions", headers=auth_headers(staff_user))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_process_then_conflict(client, make_deduction, staff_user, compliance_user, auth_headers):
    deduction = make_deduction(staff_user)

    processed = await client.post(
        f"/deductions/{deduction.id}/process",
        json={"notes": "Payroll batch 12"},
        headers=auth_headers(compliance_user),
    )
    again = await client.post(
        f"/deductions/{deduction.id}/cancel", headers=auth_headers(compliance_user)
    )

    assert processed.status_code == 200
    assert processed.json()["status"] == "processed"
    assert processed.json()["settled_by"] == compliance_user.id
    assert processed.json()["notes"] == "Payroll batch 12"
    assert again.status_code == 409
    assert again.json()["error"] == "DeductionAlreadySettled"


@pytest.mark.asyncio
async def test_cancel_requires_settling_role(
    client, make_deduction, staff_user, gm_user, fc_user, auth_headers
):
    deduction = make_deduction(staff_user)

    forbidden = await client.post(
        f"/deductions/{deduction.id}/cancel", headers=auth_headers(gm_user)
    )
    cancelled = await client.post(
        f"/deductions/{deduction.id}/cancel",
        json={"notes": "Receipt found"},
        headers=auth_headers(fc_user),
    )

    assert forbidden.status_code == 403
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_unknown_deduction(client, ceo_user, auth_headers):
    response = await client.post("/deductions/999/process", headers=auth_headers(ceo_user))

    assert response.status_code == 404
    assert response.json()["error"] == "DeductionNotFound"
