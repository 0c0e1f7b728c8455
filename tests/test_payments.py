from datetime import date, timedelta
from decimal import Decimal

import pytest

from main import app as fastapi_app
from db_base import utcnow
from api.payments import side_effects
from api.payments.db_manager import compute_invoice_amounts
from api.payments.notifications import get_notifier
from db_models.business import Business
from db_models.payment_invoice import PaymentInvoice
from conftest import LANDLINE_PHONE, REGULAR_PHONE


ADMIN_URL = "/api/admin/verification"


def by_kind(effects: list[dict]) -> dict[str, dict]:
    return {effect["kind"]: effect for effect in effects}


@pytest.mark.parametrize(
    "rewards, fee, total",
    [
        ("17.50", "3.50", "21.00"),
        ("10.01", "2.00", "12.01"),
        ("12.345", "2.47", "14.82"),
        ("0.00", "0.00", "0.00"),
    ],
)
def test_compute_invoice_amounts(rewards, fee, total):
    assert compute_invoice_amounts(Decimal(rewards), Decimal("0.20")) == (Decimal(fee), Decimal(total))


@pytest.mark.anyio
async def test_generate_invoices(workflow, business):
    cycle_id, _ = await workflow.processing_cycle()

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle_id}/invoices", headers=workflow.admin_headers)
    assert resp.status_code == 201, resp.text
    assert resp.json() == {"invoices_created": 1, "total_amount": 21.0, "businesses_invoiced": 1}

    resp = await workflow.client.get(f"{ADMIN_URL}/cycles/{cycle_id}", headers=workflow.admin_headers)
    assert resp.json()["status"] == "invoicing"

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices?cycle_id={cycle_id}", headers=workflow.admin_headers)
    invoice = resp.json()["data"][0]
    assert invoice["business_id"] == business.id
    assert invoice["status"] == "pending"
    assert invoice["total_rewards"] == 17.5
    assert invoice["admin_fee"] == 3.5
    assert invoice["total_amount"] == 21.0
    assert invoice["transaction_count"] == 3
    assert invoice["feedback_database_delivered"] is False
    assert date.fromisoformat(invoice["due_date"]) > date.fromisoformat(invoice["created_at"][:10])

    databases = await workflow.databases(cycle_id)
    assert databases[0]["status"] == "processed"


@pytest.mark.anyio
async def test_generate_invoices_twice_conflicts(workflow):
    cycle_id, _ = await workflow.invoiced_cycle()

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle_id}/invoices", headers=workflow.admin_headers)
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_generate_invoices_requires_processing_cycle(workflow):
    cycle = await workflow.create_cycle()

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle['id']}/invoices", headers=workflow.admin_headers)
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "INVALID_STATUS"
    assert body["message"] == "Invalid cycle status: preparing. Expected: processing"


@pytest.mark.anyio
async def test_generate_invoices_without_submissions_conflicts(workflow):
    cycle = await workflow.create_cycle()
    await workflow.prepare(cycle["id"])
    await workflow.advance(cycle["id"], "distributed", "collecting", "processing")

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle['id']}/invoices", headers=workflow.admin_headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "No processed verification databases found"


@pytest.mark.anyio
async def test_all_fake_records_complete_cycle_without_invoices(workflow):
    cycle = await workflow.create_cycle()
    await workflow.prepare(cycle["id"])
    await workflow.advance(cycle["id"], "distributed")
    database = (await workflow.databases(cycle["id"]))[0]
    await workflow.submit(database["id"], fake_phones=(REGULAR_PHONE, LANDLINE_PHONE))
    await workflow.advance(cycle["id"], "processing")

    resp = await workflow.client.post(f"{ADMIN_URL}/cycles/{cycle['id']}/invoices", headers=workflow.admin_headers)
    assert resp.status_code == 201, resp.text
    assert resp.json() == {"invoices_created": 0, "total_amount": 0.0, "businesses_invoiced": 0}

    resp = await workflow.client.get(f"{ADMIN_URL}/cycles/{cycle['id']}", headers=workflow.admin_headers)
    assert resp.json()["status"] == "completed"
    assert resp.json()["completed_at"] is not None


@pytest.mark.anyio
async def test_mark_paid_runs_side_effects(workflow):
    cycle_id, invoice = await workflow.invoiced_cycle()

    result = await workflow.mark_paid(invoice["id"])
    assert result["invoice"]["status"] == "paid"
    assert result["invoice"]["payment_date"] == "2026-03-20"
    assert result["invoice"]["feedback_database_delivered"] is True
    assert result["cycle_completed"] is True

    effects = by_kind(result["side_effects"])
    assert set(effects) == {"deliver_feedback_database", "create_reward_batches"}
    assert all(e["status"] == "completed" and e["attempts"] == 1 for e in effects.values())

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices/{invoice['id']}/reward-batches", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    batches = resp.json()
    assert [(b["phone_number"], b["total_reward_amount"], b["transaction_count"], b["payout_status"]) for b in batches] == [
        (REGULAR_PHONE, 15.0, 2, "pending"),
        (LANDLINE_PHONE, 2.5, 1, "invalid_number"),
    ]

    resp = await workflow.client.get(f"{ADMIN_URL}/cycles/{cycle_id}", headers=workflow.admin_headers)
    assert resp.json()["status"] == "completed"


@pytest.mark.anyio
async def test_paid_requires_payment_date(workflow):
    _, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.put(
        f"{ADMIN_URL}/invoices/{invoice['id']}/payment",
        json={"status": "paid"},
        headers=workflow.admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.anyio
async def test_paid_invoice_is_final(workflow):
    _, invoice = await workflow.invoiced_cycle()
    await workflow.mark_paid(invoice["id"])

    resp = await workflow.client.put(
        f"{ADMIN_URL}/invoices/{invoice['id']}/payment",
        json={"status": "pending"},
        headers=workflow.admin_headers,
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "INVALID_STATUS_TRANSITION"
    assert body["message"] == "Invalid payment status transition: paid -> pending"


@pytest.mark.anyio
async def test_overdue_cannot_be_set_by_hand(workflow):
    _, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.put(
        f"{ADMIN_URL}/invoices/{invoice['id']}/payment",
        json={"status": "overdue"},
        headers=workflow.admin_headers,
    )
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_dispute_then_cancel_completes_cycle(workflow):
    cycle_id, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.put(
        f"{ADMIN_URL}/invoices/{invoice['id']}/payment",
        json={"status": "disputed", "notes": "Customer count looks off"},
        headers=workflow.admin_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["invoice"]["status"] == "disputed"
    assert body["invoice"]["notes"] == "Customer count looks off"
    assert body["side_effects"] == []
    assert body["cycle_completed"] is False

    resp = await workflow.client.put(
        f"{ADMIN_URL}/invoices/{invoice['id']}/payment",
        json={"status": "cancelled"},
        headers=workflow.admin_headers,
    )
    assert resp.json()["cycle_completed"] is True


@pytest.mark.anyio
async def test_mark_overdue(workflow, db_session):
    _, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.post(f"{ADMIN_URL}/invoices/mark-overdue", headers=workflow.admin_headers)
    assert resp.json() == {"updated": 0}

    row = await db_session.get(PaymentInvoice, invoice["id"])
    row.due_date = utcnow().date() - timedelta(days=2)
    await db_session.commit()

    resp = await workflow.client.post(f"{ADMIN_URL}/invoices/mark-overdue", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"updated": 1}

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices/{invoice['id']}", headers=workflow.admin_headers)
    assert resp.json()["status"] == "overdue"

    # Overdue invoices can still be paid
    result = await workflow.mark_paid(invoice["id"])
    assert result["invoice"]["status"] == "paid"


@pytest.mark.anyio
async def test_resend_notification(workflow):
    _, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.post(
        f"{ADMIN_URL}/invoices/{invoice['id']}/resend-notification", headers=workflow.admin_headers
    )
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"invoice_id": invoice["id"], "sent": True, "notification_count": 1}

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices/{invoice['id']}", headers=workflow.admin_headers)
    assert resp.json()["last_notified_at"] is not None


@pytest.mark.anyio
async def test_resend_notification_without_email(workflow, db_session, business):
    _, invoice = await workflow.invoiced_cycle()
    row = await db_session.get(Business, business.id)
    row.email = None
    await db_session.commit()

    resp = await workflow.client.post(
        f"{ADMIN_URL}/invoices/{invoice['id']}/resend-notification", headers=workflow.admin_headers
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["sent"] is False
    assert resp.json()["notification_count"] == 0


@pytest.mark.anyio
async def test_resend_notification_survives_notifier_error(workflow):
    class BrokenNotifier:
        async def send_invoice_notification(self, invoice, business):
            raise ConnectionError("smtp unreachable")

    _, invoice = await workflow.invoiced_cycle()
    fastapi_app.dependency_overrides[get_notifier] = BrokenNotifier

    resp = await workflow.client.post(
        f"{ADMIN_URL}/invoices/{invoice['id']}/resend-notification", headers=workflow.admin_headers
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["sent"] is False


@pytest.mark.anyio
async def test_resend_notification_for_paid_invoice_conflicts(workflow):
    _, invoice = await workflow.invoiced_cycle()
    await workflow.mark_paid(invoice["id"])

    resp = await workflow.client.post(
        f"{ADMIN_URL}/invoices/{invoice['id']}/resend-notification", headers=workflow.admin_headers
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATUS"


@pytest.mark.anyio
async def test_failed_side_effect_is_retried(workflow, monkeypatch):
    async def provider_down(db, invoice):
        raise RuntimeError("reward service unavailable")

    _, invoice = await workflow.invoiced_cycle()
    monkeypatch.setitem(side_effects.HANDLERS, side_effects.CREATE_REWARD_BATCHES, provider_down)

    result = await workflow.mark_paid(invoice["id"])
    # The payment itself sticks
    assert result["invoice"]["status"] == "paid"
    effects = by_kind(result["side_effects"])
    assert effects["deliver_feedback_database"]["status"] == "completed"
    failed = effects["create_reward_batches"]
    assert failed["status"] == "pending"
    assert failed["attempts"] == 1
    assert failed["last_error"] == "reward service unavailable"

    monkeypatch.undo()
    resp = await workflow.client.post(f"{ADMIN_URL}/side-effects/retry", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"processed": 1, "completed": 1, "failed": 0}

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices/{invoice['id']}/reward-batches", headers=workflow.admin_headers)
    assert len(resp.json()) == 2


@pytest.mark.anyio
async def test_side_effect_gives_up_after_max_attempts(workflow, monkeypatch):
    async def provider_down(db, invoice):
        raise RuntimeError("reward service unavailable")

    _, invoice = await workflow.invoiced_cycle()
    monkeypatch.setitem(side_effects.HANDLERS, side_effects.CREATE_REWARD_BATCHES, provider_down)
    monkeypatch.setattr(side_effects.settings, "SIDE_EFFECT_MAX_ATTEMPTS", 1)

    result = await workflow.mark_paid(invoice["id"])
    assert by_kind(result["side_effects"])["create_reward_batches"]["status"] == "failed"

    resp = await workflow.client.post(f"{ADMIN_URL}/side-effects/retry", headers=workflow.admin_headers)
    assert resp.json() == {"processed": 0, "completed": 0, "failed": 0}


@pytest.mark.anyio
async def test_payment_statistics(workflow):
    cycle_id, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.get(f"{ADMIN_URL}/cycles/{cycle_id}/payment-statistics", headers=workflow.admin_headers)
    assert resp.status_code == 200, resp.text
    stats = resp.json()
    assert stats["invoice_count"] == 1
    assert stats["invoices_by_status"] == {"pending": 1}
    assert stats["total_invoiced"] == 21.0
    assert stats["total_paid"] == 0.0
    assert stats["total_outstanding"] == 21.0
    assert stats["total_admin_fees"] == 3.5
    assert stats["reward_batch_count"] == 0

    await workflow.mark_paid(invoice["id"])
    resp = await workflow.client.get(f"{ADMIN_URL}/cycles/{cycle_id}/payment-statistics", headers=workflow.admin_headers)
    stats = resp.json()
    assert stats["total_paid"] == 21.0
    assert stats["total_outstanding"] == 0.0
    assert stats["reward_batch_count"] == 2
    assert stats["reward_batch_amount"] == 17.5


@pytest.mark.anyio
async def test_invoice_list_filters(workflow):
    _, invoice = await workflow.invoiced_cycle()

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices?status=paid", headers=workflow.admin_headers)
    assert resp.json()["data"] == []

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices?status=pending", headers=workflow.admin_headers)
    assert [i["id"] for i in resp.json()["data"]] == [invoice["id"]]

    resp = await workflow.client.get(f"{ADMIN_URL}/invoices?cycle_id=bogus", headers=workflow.admin_headers)
    assert resp.status_code == 400
