import pytest

from main import app as fastapi_app
from api.payment_batches.payouts import get_payout_client
from conftest import LANDLINE_PHONE


@pytest.mark.anyio
async def test_health(async_client):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}
    assert float(resp.headers["X-Process-Time"]) >= 0


@pytest.mark.anyio
async def test_unhandled_error_returns_internal_server_error_body(async_client, admin_headers):
    def broken_payout_client():
        raise RuntimeError("payout provider misconfigured")

    fastapi_app.dependency_overrides[get_payout_client] = broken_payout_client
    resp = await async_client.post(
        "/api/admin/verification/payment-batches/2b1e4c4e-6f55-4c53-9d1a-0c8a3f8b9e21/process",
        headers=admin_headers,
    )
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "INTERNAL_SERVER_ERROR"
    assert body["message"] == "An internal server error occurred"
    # Internal details stay in the logs
    assert "misconfigured" not in resp.text


@pytest.mark.anyio
async def test_weekly_cycle_from_creation_to_payout(async_client, admin_user, business_user, transactions):
    resp = await async_client.post(
        "/api/auth/login/json", json={"email": "admin@test.com", "password": "adminpass"}
    )
    assert resp.status_code == 200, resp.text
    admin = {"Authorization": f"Bearer {resp.json()['access_token']}"}

    resp = await async_client.post(
        "/api/auth/login/json", json={"email": "owner@test.com", "password": "ownerpass"}
    )
    assert resp.status_code == 200, resp.text
    owner = {"Authorization": f"Bearer {resp.json()['access_token']}"}

    # Admin opens the week and builds the databases
    resp = await async_client.post("/api/admin/verification/cycles", json={"cycle_week": "2026-03-02"}, headers=admin)
    assert resp.status_code == 201, resp.text
    cycle_id = resp.json()["id"]
    cycle_url = f"/api/admin/verification/cycles/{cycle_id}"

    resp = await async_client.post(f"{cycle_url}/invoices", headers=admin)
    assert resp.status_code == 409

    resp = await async_client.post(f"{cycle_url}/prepare", headers=admin)
    assert resp.status_code == 202, resp.text
    resp = await async_client.get(f"{cycle_url}/preparation-status", headers=admin)
    assert resp.json()["status"] == "completed"

    resp = await async_client.put(f"{cycle_url}/status", json={"status": "distributed"}, headers=admin)
    assert resp.status_code == 200, resp.text

    # Business downloads its database and reviews it
    resp = await async_client.get("/api/business/verification/databases", headers=owner)
    database_id = resp.json()["data"][0]["id"]
    resp = await async_client.get(f"/api/business/verification/databases/{database_id}/download/csv", headers=owner)
    assert resp.status_code == 200, resp.text
    resp = await async_client.get(resp.json()["download_url"])
    assert resp.status_code == 200

    resp = await async_client.get(f"/api/business/verification/databases/{database_id}/records", headers=owner)
    decisions = [
        {"record_id": r["id"], "verification_status": "fake" if r["phone_number"] == LANDLINE_PHONE else "verified"}
        for r in resp.json()
    ]
    resp = await async_client.post(
        f"/api/business/verification/databases/{database_id}/submit",
        json={"records": decisions},
        headers=owner,
    )
    assert resp.status_code == 200, resp.text

    # Admin invoices the verified rewards and records the payment
    resp = await async_client.put(f"{cycle_url}/status", json={"status": "processing"}, headers=admin)
    assert resp.status_code == 200, resp.text
    resp = await async_client.post(f"{cycle_url}/invoices", headers=admin)
    assert resp.status_code == 201, resp.text
    # 15.00 in rewards plus 20% fee
    assert resp.json()["total_amount"] == 18.0

    resp = await async_client.get(f"/api/admin/verification/invoices?cycle_id={cycle_id}", headers=admin)
    invoice_id = resp.json()["data"][0]["id"]
    resp = await async_client.put(
        f"/api/admin/verification/invoices/{invoice_id}/payment",
        json={"status": "paid", "payment_date": "2026-03-12"},
        headers=admin,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["cycle_completed"] is True

    # Rewards go out in one payout batch
    resp = await async_client.post(f"{cycle_url}/payment-batch", headers=admin)
    assert resp.status_code == 201, resp.text
    assert resp.json()["total_amount"] == 15.0
    resp = await async_client.post(
        f"/api/admin/verification/payment-batches/{resp.json()['id']}/process", headers=admin
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["batch"]["status"] == "completed"

    resp = await async_client.get(cycle_url, headers=admin)
    assert resp.json()["status"] == "completed"

    resp = await async_client.get("/api/admin/security/audit-logs?limit=100", headers=admin)
    actions = {entry["action"] for entry in resp.json()["data"]}
    assert {
        "verification_cycle_created",
        "database_preparation_started",
        "verification_database_submitted",
        "payment_invoices_generated",
        "payment_status_updated",
        "payment_batch_created",
        "payment_batch_processed",
    } <= actions
