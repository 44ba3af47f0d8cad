"""
Integration tests for the HTTP API.

Exercises auth, the loan approval flow, balances, bulk import, penalties
and the activity log over the real routes and a SQLite document store.
"""

import pytest
from datetime import datetime, timedelta, timezone


@pytest.fixture
def admin(auth_headers):
    return auth_headers("A1", "Admin", "Amina Juma")


@pytest.fixture
def second_admin(auth_headers):
    return auth_headers("A2", "Admin", "Baraka Ali")


@pytest.fixture
def mary(auth_headers):
    return auth_headers("M", "Member", "Mary Mushi")


@pytest.fixture
async def directory(client, admin):
    """Register two admins and two members over the API."""
    people = [
        {"id": "A1", "display_name": "Amina Juma", "role": "Admin", "member_code": "SBK010"},
        {"id": "A2", "display_name": "Baraka Ali", "role": "Admin", "member_code": "SBK011"},
        {"id": "M", "display_name": "Mary Mushi", "member_code": "SBK001"},
        {"id": "X", "display_name": "Xavier Kimaro", "member_code": "SBK002"},
    ]
    for person in people:
        response = await client.post("/v1/admin/members", json=person, headers=admin)
        assert response.status_code == 201
    return people


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    response = await client.get("/v1/group/totals")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_bad_token_is_rejected(client):
    response = await client.get("/v1/group/totals", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(client, auth_headers):
    response = await client.get("/v1/group/totals", headers=auth_headers("M", "Treasurer"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_member_cannot_use_admin_routes(client, directory, mary):
    response = await client.post(
        "/v1/transactions",
        json={"kind": "Contribution", "category": "Hisa", "amount": "1000", "member_id": "M"},
        headers=mary,
    )
    assert response.status_code == 403
    assert response.json()["message"] == "Admin access required"

    response = await client.get("/v1/admin/activity", headers=mary)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_member_reads_only_own_balance(client, directory, mary):
    response = await client.get("/v1/members/M/balance", headers=mary)
    assert response.status_code == 200

    response = await client.get("/v1/members/X/balance", headers=mary)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_member_balance_is_404(client, directory, admin):
    response = await client.get("/v1/members/ghost/balance", headers=admin)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_correlation_id_round_trip(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"
    assert "X-Process-Time" in response.headers


@pytest.mark.asyncio
async def test_loan_request_flow(client, directory, admin, second_admin, mary):
    """
    Mary requests a Standard loan of 50000; both admins approve and her
    outstanding Standard balance becomes 55000.
    """
    # 1. Submit
    response = await client.post(
        "/v1/loan-requests",
        json={"amount": "50000", "type": "Standard", "description": "School fees"},
        headers=mary,
    )
    assert response.status_code == 201
    request = response.json()
    assert request["status"] == "Pending"
    assert request["member_id"] == "M"
    assert request["approvals"] == {"A1": "pending", "A2": "pending"}

    # 2. Members cannot vote
    response = await client.post(
        f"/v1/loan-requests/{request['id']}/votes", json={"decision": "approved"}, headers=mary
    )
    assert response.status_code == 403

    # 3. "pending" is not a decision
    response = await client.post(
        f"/v1/loan-requests/{request['id']}/votes", json={"decision": "pending"}, headers=admin
    )
    assert response.status_code == 422

    # 4. First approval keeps it pending
    response = await client.post(
        f"/v1/loan-requests/{request['id']}/votes", json={"decision": "approved"}, headers=admin
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Pending"

    # 5. Second approval posts the loan
    response = await client.post(
        f"/v1/loan-requests/{request['id']}/votes", json={"decision": "approved"}, headers=second_admin
    )
    assert response.status_code == 200
    approved = response.json()
    assert approved["status"] == "Approved"
    assert approved["transaction_id"] == f"loan-{request['id']}"

    # 6. Voting on a closed request conflicts
    response = await client.post(
        f"/v1/loan-requests/{request['id']}/votes", json={"decision": "rejected"}, headers=admin
    )
    assert response.status_code == 409

    # 7. Balance reflects the loan with interest
    response = await client.get("/v1/members/M/balance", headers=mary)
    assert response.status_code == 200
    balance = response.json()
    assert balance["outstanding"]["Standard"] == "55000"
    assert balance["loaned_principal"]["Standard"] == "50000"
    assert balance["total_outstanding"] == "55000"

    # 8. Mary sees her own request
    response = await client.get(f"/v1/loan-requests/{request['id']}", headers=mary)
    assert response.status_code == 200
    response = await client.get("/v1/loan-requests", headers=mary)
    assert [r["id"] for r in response.json()] == [request["id"]]


@pytest.mark.asyncio
async def test_rejected_request_posts_nothing(client, directory, admin, second_admin, mary):
    response = await client.post("/v1/loan-requests", json={"amount": "50000", "type": "Standard"}, headers=mary)
    request_id = response.json()["id"]

    await client.post(f"/v1/loan-requests/{request_id}/votes", json={"decision": "approved"}, headers=admin)
    response = await client.post(
        f"/v1/loan-requests/{request_id}/votes",
        json={"decision": "rejected", "reason": "Existing arrears"},
        headers=second_admin,
    )
    assert response.json()["status"] == "Rejected"
    assert response.json()["rejection_reason"] == "Existing arrears"

    response = await client.get("/v1/members/M/transactions", headers=mary)
    assert response.json() == []


@pytest.mark.asyncio
async def test_loan_request_without_admins(client, auth_headers, admin):
    await client.post("/v1/admin/members", json={"id": "M", "display_name": "Mary Mushi"}, headers=admin)

    response = await client.post(
        "/v1/loan-requests", json={"amount": "1000", "type": "Dharura"}, headers=auth_headers("M")
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_direct_entry_and_group_totals(client, directory, admin, mary):
    entries = [
        {"kind": "Contribution", "category": "Hisa", "amount": "100000", "member_id": "M"},
        {"kind": "Contribution", "category": "Jamii", "amount": "5000", "member_id": "X"},
        {"kind": "Loan", "category": "Dharura", "amount": "20000", "member_id": "X"},
    ]
    for entry in entries:
        response = await client.post("/v1/transactions", json=entry, headers=admin)
        assert response.status_code == 201

    response = await client.get("/v1/group/totals", headers=mary)
    assert response.status_code == 200
    totals = response.json()
    assert totals["total_contributions"] == "105000"
    assert totals["loan_pool"] == "20000"
    assert totals["vault_balance"] == "85000"
    assert totals["active_loan_count"] == 1

    response = await client.get("/v1/group/outstanding", headers=admin)
    assert [row["member_id"] for row in response.json()] == ["X"]

    response = await client.get("/v1/members/M/breakdown", headers=mary)
    assert response.json() == {"Hisa": "100000"}


@pytest.mark.asyncio
async def test_invalid_direct_entry(client, directory, admin):
    response = await client.post(
        "/v1/transactions",
        json={"kind": "Contribution", "category": "Standard", "amount": "1000", "member_id": "M"},
        headers=admin,
    )
    assert response.status_code == 422

    response = await client.post(
        "/v1/transactions",
        json={"kind": "Contribution", "category": "Hisa", "amount": "0", "member_id": "M"},
        headers=admin,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_penalty_check(client, directory, admin, mary):
    occurred_at = (datetime.now(timezone.utc) - timedelta(days=40)).isoformat()
    await client.post(
        "/v1/transactions",
        json={"kind": "Loan", "category": "Dharura", "amount": "20000", "member_id": "M", "occurred_at": occurred_at},
        headers=admin,
    )

    response = await client.post("/v1/members/M/penalties/check", headers=mary)
    assert response.status_code == 200
    penalties = response.json()
    assert len(penalties) == 1
    assert penalties[0]["new_amount"] == "80000"

    response = await client.post("/v1/members/M/penalties/check", headers=mary)
    assert response.json() == []

    response = await client.get("/v1/members/M/balance", headers=mary)
    assert response.json()["outstanding"]["Dharura"] == "80000"


@pytest.mark.asyncio
async def test_bulk_import_validate_then_commit(client, directory, admin):
    batch = {"rows": [
        {"member_code": "SBK001", "date": "1/8/2026", "hisa": "100000", "jamii": "5000"},
        {"member_code": "SBK001", "date": "1/8/2026", "hisa": "100000", "jamii": "5000"},
        {"member_code": "SBK002", "date": "2026-01-08", "standard_repayment": "10000"},
        {"member_code": "SBK777", "date": "2026-01-08", "hisa": "1000"},
    ]}

    response = await client.post("/v1/admin/bulk-import/validate", json=batch, headers=admin)
    assert response.status_code == 200
    report = response.json()
    assert report["counts"] == {
        "total": 4, "accepted": 1, "duplicate": 1, "invalid": 2, "committed": 0, "failed": 0,
    }
    assert [row["outcome"] for row in report["rows"]] == ["accepted", "duplicate", "invalid", "invalid"]
    assert report["rows"][2]["error_code"] == "NoBalanceError"
    assert report["rows"][3]["error_code"] == "UnknownMemberError"

    response = await client.post("/v1/admin/bulk-import/commit", json=batch, headers=admin)
    assert response.status_code == 200
    report = response.json()
    assert report["counts"]["committed"] == 1
    assert report["transaction_count"] == 2

    response = await client.get("/v1/members/M/balance", headers=admin)
    assert response.json()["contributed"] == {"Hisa": "100000", "Jamii": "5000"}


@pytest.mark.asyncio
async def test_empty_batch_is_rejected(client, admin):
    response = await client.post("/v1/admin/bulk-import/validate", json={"rows": []}, headers=admin)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_activity_log(client, directory, admin):
    await client.post(
        "/v1/transactions",
        json={"kind": "Contribution", "category": "Hisa", "amount": "1000", "member_id": "M"},
        headers={**admin, "X-Correlation-ID": "corr-42"},
    )

    response = await client.get("/v1/admin/activity", params={"action": "transaction_created"}, headers=admin)
    assert response.status_code == 200
    entries = response.json()
    assert len(entries) == 1
    assert entries[0]["actor_id"] == "A1"
    assert entries[0]["affected_member_id"] == "M"
    assert entries[0]["metadata"]["correlation_id"] == "corr-42"

    response = await client.get("/v1/admin/activity", params={"limit": 2}, headers=admin)
    assert len(response.json()) == 2

    response = await client.get("/v1/admin/activity/stats", headers=admin)
    stats = response.json()
    assert stats["total"] == 5
    assert stats["by_action"]["member_added"] == 4


@pytest.mark.asyncio
async def test_assign_member_codes(client, admin):
    await client.post("/v1/admin/members", json={"id": "P", "display_name": "Pendo"}, headers=admin)

    response = await client.post("/v1/admin/members/assign-codes", headers=admin)
    assert response.status_code == 200
    assert response.json() == [{"member_id": "P", "member_code": "SBK001"}]
