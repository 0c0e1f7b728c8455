# api/payments/side_effects.py
"""
Payment outbox.

Marking an invoice paid enqueues one row per follow-up action in the same
commit as the status change. Rows are then dispatched one at a time, each in
its own transaction: a failing action is rolled back, logged and left
`pending` for a retry until `SIDE_EFFECT_MAX_ATTEMPTS` is reached, after
which it is `failed`. The payment status itself is never rolled back.
"""
import re
from collections import defaultdict
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_base import utcnow
from db_models.payment_invoice import PaymentInvoice, CustomerRewardBatch
from db_models.payment_side_effect import PaymentSideEffect
from . import queries


logger = structlog.get_logger(__name__)

DELIVER_FEEDBACK_DATABASE = "deliver_feedback_database"
CREATE_REWARD_BATCHES = "create_reward_batches"

PAID_SIDE_EFFECTS = (DELIVER_FEEDBACK_DATABASE, CREATE_REWARD_BATCHES)

# Swish payouts go to Swedish mobile numbers only
SWEDISH_MOBILE = re.compile(r"^\+467\d{8}$")


def enqueue_paid_side_effects(db: AsyncSession, invoice: PaymentInvoice) -> list[PaymentSideEffect]:
    effects = [PaymentSideEffect(invoice_id=invoice.id, kind=kind, status="pending") for kind in PAID_SIDE_EFFECTS]
    db.add_all(effects)
    return effects


async def deliver_feedback_database(db: AsyncSession, invoice: PaymentInvoice) -> None:
    """Release the cycle's feedback database to the business that paid."""
    if invoice.feedback_database_delivered:
        return
    invoice.feedback_database_delivered = True
    invoice.delivered_at = utcnow()
    logger.info(
        "Feedback database delivered",
        invoice_id=invoice.id,
        business_id=invoice.business_id,
        cycle_id=invoice.cycle_id,
    )


async def create_customer_reward_batches(db: AsyncSession, invoice: PaymentInvoice) -> int:
    """
    One reward batch per customer phone number with verified transactions.
    Phones that already have a batch for this invoice are skipped, so a retry
    never pays a customer twice. Returns the number of batches created.
    """
    records = (
        await db.execute(queries.select_verified_records_for_business(invoice.cycle_id, invoice.business_id))
    ).scalars().all()
    existing = set((await db.execute(queries.select_invoice_reward_phones(invoice.id))).scalars().all())

    totals: dict[str, Decimal] = defaultdict(Decimal)
    counts: dict[str, int] = defaultdict(int)
    for record in records:
        totals[record.phone_number] += record.reward_amount
        counts[record.phone_number] += 1

    created = 0
    for phone_number, total in totals.items():
        if phone_number in existing:
            continue
        db.add(
            CustomerRewardBatch(
                cycle_id=invoice.cycle_id,
                invoice_id=invoice.id,
                business_id=invoice.business_id,
                phone_number=phone_number,
                total_reward_amount=total,
                transaction_count=counts[phone_number],
                payout_status="pending" if SWEDISH_MOBILE.match(phone_number) else "invalid_number",
            )
        )
        created += 1

    logger.info("Customer reward batches created", invoice_id=invoice.id, batches=created)
    return created


HANDLERS = {
    DELIVER_FEEDBACK_DATABASE: deliver_feedback_database,
    CREATE_REWARD_BATCHES: create_customer_reward_batches,
}


async def dispatch_side_effect(db: AsyncSession, effect_id: str) -> bool:
    """Run one pending outbox row. Returns True when it completed."""
    effect = await db.get(PaymentSideEffect, effect_id)
    if effect is None or effect.status != "pending":
        return False

    try:
        invoice = await db.get(PaymentInvoice, effect.invoice_id)
        await HANDLERS[effect.kind](db, invoice)
        effect.attempts += 1
        effect.status = "completed"
        effect.completed_at = utcnow()
        effect.last_error = None
        await db.commit()
        return True
    except Exception as exc:
        await db.rollback()
        effect = await db.get(PaymentSideEffect, effect_id)
        effect.attempts += 1
        effect.last_error = str(exc) or exc.__class__.__name__
        if effect.attempts >= settings.SIDE_EFFECT_MAX_ATTEMPTS:
            effect.status = "failed"
        await db.commit()
        logger.exception(
            "Payment side effect failed",
            side_effect_id=effect_id,
            kind=effect.kind,
            invoice_id=effect.invoice_id,
            attempts=effect.attempts,
            status=effect.status,
        )
        return False


async def dispatch_pending(db: AsyncSession) -> tuple[int, int, int]:
    """Retry every pending outbox row. Returns (processed, completed, failed)."""
    effect_ids = [effect.id for effect in (await db.execute(queries.select_pending_side_effects())).scalars()]
    completed = 0
    for effect_id in effect_ids:
        if await dispatch_side_effect(db, effect_id):
            completed += 1
    return len(effect_ids), completed, len(effect_ids) - completed
