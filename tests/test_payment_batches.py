import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest

from main import app as fastapi_app
from core.errors import JobLockedError, PayoutError
from core.security import create_access_token, get_password_hash
from db_base import utcnow
from db_models.business import Business, Transaction
from db_models.payment_batch import PaymentBatch
from db_models.user import User
from db_models.verification_cycle import VerificationCycle
from api.payment_batches.db_manager import (
    acquire_job_lock,
    process_payment_batch,
    release_job_lock,
    renew_job_lock,
)
from api.payment_batches.payouts import MockPayoutClient, SwishPayoutClient, get_payout_client
from conftest import CYCLE_WEEK, REGULAR_PHONE, WorkflowDriver


ADMIN_URL = "/api/admin/verification"


class DecliningPayoutClient:
    async def send_payout(self, phone_number, amount, message):
        raise PayoutError("Customer reward payout failed", details={"phone_suffix": phone_number[-4:]})


async def paid_cycle(workflow) -> tuple[str, dict]:
    cycle_id, invoice = await workflow.invoiced_cycle()
    await workflow.mark_paid(invoice["id"])
    return cycle_id, invoice


async def create_batch(workflow, cycle_id: str) -> dict:
    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle_id}/payment-batch", headers=workflow.admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def reward_batches(workflow, invoice_id: str) -> dict[str, dict]:
    resp = await workflow.client.get(f"{ADMIN_URL}/invoices/{invoice_id}/reward-batches", headers=workflow.admin_headers)
    return {b["phone_number"]: b for b in resp.json()}


@pytest.fixture
async def lockable_batch(db_session) -> PaymentBatch:
    cycle = VerificationCycle(cycle_week=CYCLE_WEEK, status="completed")
    db_session.add(cycle)
    await db_session.flush()
    batch = PaymentBatch(cycle_id=cycle.id, status="pending")
    db_session.add(batch)
    await db_session.commit()
    return batch


@pytest.mark.anyio
async def test_lock_is_exclusive_until_released(db_session, lockable_batch):
    assert await acquire_job_lock(db_session, lockable_batch.id, "worker-a") is True
    assert await acquire_job_lock(db_session, lockable_batch.id, "worker-b") is False

    # Only the holder can release
    assert await release_job_lock(db_session, lockable_batch.id, "worker-b") is False
    assert await release_job_lock(db_session, lockable_batch.id, "worker-a") is True

    assert await acquire_job_lock(db_session, lockable_batch.id, "worker-b") is True


@pytest.mark.anyio
async def test_expired_lease_can_be_taken_over(db_session, lockable_batch):
    assert await acquire_job_lock(db_session, lockable_batch.id, "worker-a", lease_seconds=-5) is True
    assert await acquire_job_lock(db_session, lockable_batch.id, "worker-b") is True

    batch = await db_session.get(PaymentBatch, lockable_batch.id, populate_existing=True)
    assert batch.job_lock_key == "worker-b"
    assert batch.lock_expires_at > utcnow()


@pytest.mark.anyio
async def test_only_the_holder_renews_the_lease(db_session, lockable_batch):
    assert await acquire_job_lock(db_session, lockable_batch.id, "worker-a", lease_seconds=5) is True
    assert await renew_job_lock(db_session, lockable_batch.id, "worker-b") is False
    assert await renew_job_lock(db_session, lockable_batch.id, "worker-a", lease_seconds=600) is True

    batch = await db_session.get(PaymentBatch, lockable_batch.id, populate_existing=True)
    assert batch.job_lock_key == "worker-a"
    assert batch.lock_expires_at > utcnow() + timedelta(minutes=5)


@pytest.mark.anyio
async def test_create_payment_batch(workflow):
    cycle_id, _ = await paid_cycle(workflow)

    batch = await create_batch(workflow, cycle_id)
    assert batch["cycle_id"] == cycle_id
    assert batch["status"] == "pending"
    # The landline number is not payable
    assert batch["reward_batch_count"] == 1
    assert batch["total_amount"] == 15.0
    assert batch["job_lock_key"] is None

    resp = await workflow.client.get(f"{ADMIN_URL}/payment-batches/{batch['id']}", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["id"] == batch["id"]


@pytest.mark.anyio
async def test_second_payment_batch_needs_new_rewards(workflow):
    cycle_id, _ = await paid_cycle(workflow)
    await create_batch(workflow, cycle_id)

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle_id}/payment-batch", headers=workflow.admin_headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "No pending customer reward batches for this cycle"


@pytest.mark.anyio
async def test_payment_batch_needs_rewards(workflow):
    cycle_id, _ = await workflow.invoiced_cycle()

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle_id}/payment-batch", headers=workflow.admin_headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "No pending customer reward batches for this cycle"


@pytest.mark.anyio
async def test_process_payment_batch(workflow):
    cycle_id, invoice = await paid_cycle(workflow)
    batch = await create_batch(workflow, cycle_id)

    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    result = resp.json()
    assert result["sent"] == 1
    assert result["failed"] == 0
    assert result["batch"]["status"] == "completed"
    assert result["batch"]["processed_at"] is not None
    assert result["batch"]["job_lock_key"] is None

    rewards = await reward_batches(workflow, invoice["id"])
    assert rewards[REGULAR_PHONE]["payout_status"] == "sent"
    assert rewards[REGULAR_PHONE]["payout_reference"].startswith("SWISH-")

    # A completed batch is not paid out again
    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATUS_TRANSITION"

    resp = await workflow.client.get(f"{ADMIN_URL}/payment-batches/{batch['id']}", headers=workflow.admin_headers)
    assert resp.json()["job_lock_key"] is None


@pytest.mark.anyio
async def test_process_refused_while_lease_is_live(workflow, db_session):
    cycle_id, _ = await paid_cycle(workflow)
    batch = await create_batch(workflow, cycle_id)
    assert await acquire_job_lock(db_session, batch["id"], "another-worker") is True

    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "JOB_LOCKED"


@pytest.mark.anyio
async def test_process_takes_over_expired_lease(workflow, db_session):
    cycle_id, _ = await paid_cycle(workflow)
    batch = await create_batch(workflow, cycle_id)

    row = await db_session.get(PaymentBatch, batch["id"])
    row.job_lock_key = "crashed-worker"
    row.lock_expires_at = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["batch"]["status"] == "completed"


@pytest.mark.anyio
async def test_failed_payouts_are_retried(workflow):
    cycle_id, invoice = await paid_cycle(workflow)
    batch = await create_batch(workflow, cycle_id)

    fastapi_app.dependency_overrides[get_payout_client] = DecliningPayoutClient
    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    result = resp.json()
    assert result["batch"]["status"] == "failed"
    assert result["failed"] == 1
    assert (await reward_batches(workflow, invoice["id"]))[REGULAR_PHONE]["payout_status"] == "failed"

    fastapi_app.dependency_overrides[get_payout_client] = MockPayoutClient
    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    result = resp.json()
    assert result["batch"]["status"] == "completed"
    assert result["sent"] == 1
    assert (await reward_batches(workflow, invoice["id"]))[REGULAR_PHONE]["payout_status"] == "sent"


@pytest.mark.anyio
async def test_unknown_payment_batch_is_404(async_client, admin_headers):
    resp = await async_client.get(
        f"{ADMIN_URL}/payment-batches/2b1e4c4e-6f55-4c53-9d1a-0c8a3f8b9e21", headers=admin_headers
    )
    assert resp.status_code == 404
    assert resp.json()["message"] == "Payment batch not found"


def test_payout_client_defaults_to_mock():
    assert isinstance(get_payout_client(), MockPayoutClient)


class LeaseTakeoverPayoutClient:
    """Pays out, while another worker takes over the batch lease meanwhile."""

    def __init__(self, session_factory, batch_id: str):
        self.session_factory = session_factory
        self.batch_id = batch_id

    async def send_payout(self, phone_number, amount, message):
        async with self.session_factory() as session:
            batch = await session.get(PaymentBatch, self.batch_id)
            batch.lock_expires_at = utcnow() - timedelta(seconds=1)
            await session.commit()
            assert await acquire_job_lock(session, self.batch_id, "worker-b") is True
        return "SWISH-TAKEN-OVER"


@pytest.mark.anyio
async def test_run_stops_when_lease_is_taken_over(workflow, db_session, session_factory):
    cycle_id, invoice = await paid_cycle(workflow)
    batch = await create_batch(workflow, cycle_id)

    with pytest.raises(JobLockedError):
        await process_payment_batch(db_session, batch["id"], LeaseTakeoverPayoutClient(session_factory, batch["id"]))

    # The payout already made is kept; the new holder owns the rest of the run
    rewards = await reward_batches(workflow, invoice["id"])
    assert rewards[REGULAR_PHONE]["payout_status"] == "sent"
    assert rewards[REGULAR_PHONE]["payout_reference"] == "SWISH-TAKEN-OVER"
    row = await db_session.get(PaymentBatch, batch["id"], populate_existing=True)
    assert row.status == "processing"
    assert row.job_lock_key == "worker-b"


LATE_PHONE = "+46707777777"


@pytest.mark.anyio
async def test_rewards_of_late_invoices_get_their_own_batch(workflow, db_session):
    other = Business(name="Bageri Sen", email="billing@bageri.test")
    db_session.add(other)
    await db_session.flush()
    db_session.add(
        Transaction(
            business_id=other.id,
            phone_number=LATE_PHONE,
            amount=Decimal("100.00"),
            reward_percentage=Decimal("5.00"),
            transaction_date=datetime(2026, 2, 27, 15, 0, tzinfo=timezone.utc),
        )
    )
    other_owner = User(
        email="owner@bageri.test",
        hashed_password=get_password_hash("bageripass"),
        full_name="Other Owner",
        role="BUSINESS",
        business_id=other.id,
        is_active=True,
    )
    db_session.add(other_owner)
    await db_session.commit()
    token = create_access_token(data={"sub": str(other_owner.id), "role": other_owner.role})
    other_portal = WorkflowDriver(workflow.client, workflow.admin_headers, {"Authorization": f"Bearer {token}"})

    cycle = await workflow.create_cycle()
    await workflow.prepare(cycle["id"])
    await workflow.advance(cycle["id"], "distributed")
    databases = {db["business_id"]: db for db in await workflow.databases(cycle["id"])}
    await other_portal.submit(databases[other.id]["id"])
    for business_id, database in databases.items():
        if business_id != other.id:
            await workflow.submit(database["id"])
    await workflow.advance(cycle["id"], "processing")
    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle['id']}/invoices", headers=workflow.admin_headers)
    assert resp.status_code == 201, resp.text
    resp = await workflow.client.get(f"{ADMIN_URL}/invoices?cycle_id={cycle['id']}", headers=workflow.admin_headers)
    invoices = {invoice["business_id"]: invoice for invoice in resp.json()["data"]}
    late_invoice = invoices.pop(other.id)
    (early_invoice,) = invoices.values()

    # First invoice paid, batched and paid out before the second one is paid
    await workflow.mark_paid(early_invoice["id"])
    first = await create_batch(workflow, cycle["id"])
    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{first['id']}/process", headers=workflow.admin_headers)
    assert resp.json()["batch"]["status"] == "completed"

    await workflow.mark_paid(late_invoice["id"])
    second = await create_batch(workflow, cycle["id"])
    assert second["id"] != first["id"]
    assert second["reward_batch_count"] == 1
    assert second["total_amount"] == 5.0

    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{second['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["sent"] == 1

    late_reward = (await reward_batches(workflow, late_invoice["id"]))[LATE_PHONE]
    assert late_reward["payout_status"] == "sent"
    assert late_reward["payment_batch_id"] == second["id"]

    resp = await workflow.client.get(f"{ADMIN_URL}/cycles/{cycle['id']}/payment-batches", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert [b["id"] for b in resp.json()] == [first["id"], second["id"]]


def swish_client(handler) -> SwishPayoutClient:
    return SwishPayoutClient("https://swish.test/", 5.0, transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_swish_payout_posts_to_payouts_api():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, headers={"Location": "https://swish.test/api/v2/payouts/PAY123"})

    reference = await swish_client(handler).send_payout(REGULAR_PHONE, Decimal("15"), "Feedback reward")

    assert reference == "PAY123"
    assert str(seen[0].url) == "https://swish.test/api/v2/payouts"
    assert json.loads(seen[0].content) == {
        "payeeAlias": "46701234567",
        "amount": "15.00",
        "currency": "SEK",
        "message": "Feedback reward",
    }


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response, reference",
    [
        (httpx.Response(201, json={"id": "PAY456"}), "PAY456"),
        (httpx.Response(201), ""),
        (httpx.Response(200, text="accepted"), ""),
        (httpx.Response(201, json=["PAY789"]), ""),
    ],
)
async def test_accepted_swish_payout_never_raises(response, reference):
    client = swish_client(lambda request: response)
    assert await client.send_payout(REGULAR_PHONE, Decimal("15"), "Feedback reward") == reference


@pytest.mark.anyio
async def test_rejected_swish_payout_raises_payout_error():
    client = swish_client(lambda request: httpx.Response(422, json={"errorCode": "ACMT07"}))

    with pytest.raises(PayoutError) as exc_info:
        await client.send_payout(REGULAR_PHONE, Decimal("15"), "Feedback reward")
    assert exc_info.value.details["phone_suffix"] == "4567"


@pytest.mark.anyio
async def test_unreachable_swish_raises_payout_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PayoutError):
        await swish_client(handler).send_payout(REGULAR_PHONE, Decimal("15"), "Feedback reward")


@pytest.mark.anyio
async def test_payout_without_reference_is_recorded_as_sent(workflow):
    cycle_id, invoice = await paid_cycle(workflow)
    batch = await create_batch(workflow, cycle_id)

    fastapi_app.dependency_overrides[get_payout_client] = lambda: swish_client(lambda request: httpx.Response(201))
    resp = await workflow.client.post(f"{ADMIN_URL}/payment-batches/{batch['id']}/process", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["batch"]["status"] == "completed"

    reward = (await reward_batches(workflow, invoice["id"]))[REGULAR_PHONE]
    assert reward["payout_status"] == "sent"
    assert reward["payout_reference"] == ""
