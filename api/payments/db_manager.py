# api/payments/db_manager.py
"""
Business logic for invoicing and payment tracking.
"""
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.audit import AuditAction, record_audit
from core.business_context import get_business_snapshot
from core.errors import ConflictError, NotFoundError, ValidationFailedError
from core.params import offset_for
from core.workflow import apply_transition, cycle_workflow, database_workflow, invoice_workflow
from db_base import utcnow
from db_models.payment_invoice import PaymentInvoice
from db_models.payment_side_effect import PaymentSideEffect
from api.cycles.db_manager import get_cycle_by_id, transition_cycle
from .models import InvoiceGenerationResult, PaymentStatistics
from .notifications import InvoiceNotifier
from . import queries, side_effects


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def compute_invoice_amounts(total_rewards: Decimal, fee_rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return (admin_fee, total_amount) rounded half-up to cents."""
    rewards = Decimal(total_rewards).quantize(CENT, rounding=ROUND_HALF_UP)
    admin_fee = (rewards * Decimal(fee_rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    return admin_fee, rewards + admin_fee


async def get_invoice(db: AsyncSession, invoice_id: str) -> PaymentInvoice:
    invoice = await db.get(PaymentInvoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Payment invoice not found", details={"invoice_id": invoice_id})
    return invoice


async def generate_invoices(
    db: AsyncSession,
    cycle_id: str,
    admin_id: int | None = None,
) -> InvoiceGenerationResult:
    """
    Invoice every business with verified records in the cycle and move the
    cycle to `invoicing`.

    Raises:
        NotFoundError: If cycle doesn't exist
        InvalidStatusError: If the cycle is not `processing`
        ConflictError: If invoices already exist or nothing was submitted
    """
    cycle = await get_cycle_by_id(db, cycle_id)
    cycle_workflow.require(cycle.status, "processing")

    if (await db.execute(queries.count_cycle_invoices(cycle_id))).scalar():
        raise ConflictError("Invoices already generated for this cycle")

    databases = (await db.execute(queries.select_invoiceable_databases(cycle_id))).scalars().all()
    if not databases:
        raise ConflictError("No processed verification databases found")

    due_date = utcnow().date() + timedelta(days=settings.INVOICE_DUE_DAYS)
    invoices: list[PaymentInvoice] = []
    for database in databases:
        if database.status == "submitted":
            apply_transition(database, database_workflow, "processed")

        verified = (await db.execute(queries.select_verified_records(database.id))).scalars().all()
        if not verified:
            continue

        total_rewards = sum((record.reward_amount for record in verified), Decimal("0"))
        admin_fee, total_amount = compute_invoice_amounts(total_rewards, settings.ADMIN_FEE_RATE)
        invoice = PaymentInvoice(
            cycle_id=cycle_id,
            business_id=database.business_id,
            status="pending",
            total_rewards=total_rewards,
            admin_fee=admin_fee,
            total_amount=total_amount,
            transaction_count=len(verified),
            due_date=due_date,
        )
        db.add(invoice)
        invoices.append(invoice)

    transition_cycle(cycle, "invoicing")
    if not invoices:
        # Nothing to collect; the cycle is done
        transition_cycle(cycle, "completed")

    grand_total = sum((invoice.total_amount for invoice in invoices), Decimal("0"))
    record_audit(
        db,
        action=AuditAction.INVOICES_GENERATED,
        entity_type="weekly_verification_cycle",
        entity_id=cycle_id,
        admin_id=admin_id,
        details={"invoices_created": len(invoices), "total_amount": str(grand_total)},
    )
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Invoices already generated for this cycle") from exc

    logger.info(
        "Invoices generated",
        cycle_id=cycle_id,
        invoices=len(invoices),
        total_amount=str(grand_total),
    )
    return InvoiceGenerationResult(
        invoices_created=len(invoices),
        total_amount=float(grand_total),
        businesses_invoiced=len({invoice.business_id for invoice in invoices}),
    )


async def update_payment_status(
    db: AsyncSession,
    invoice_id: str,
    status: str,
    payment_date: date | None = None,
    notes: str | None = None,
    admin_id: int | None = None,
) -> tuple[PaymentInvoice, list[PaymentSideEffect], bool]:
    """
    Apply a payment status change from the invoice transition table.

    On `paid` the feedback delivery and reward batch actions are enqueued in
    the same commit and dispatched afterwards; their failures are recorded
    on the outbox rows only.

    Returns:
        (invoice, its outbox rows, whether the cycle completed)

    Raises:
        NotFoundError: If invoice doesn't exist
        ValidationFailedError: If `paid` is requested without a payment date
        InvalidTransitionError: If the transition is not allowed
    """
    if status == "paid" and payment_date is None:
        raise ValidationFailedError("payment_date is required when status is paid")

    invoice = await get_invoice(db, invoice_id)
    previous = apply_transition(invoice, invoice_workflow, status)
    cycle_id = invoice.cycle_id
    if notes is not None:
        invoice.notes = notes

    effect_ids: list[str] = []
    if status == "paid":
        invoice.payment_date = payment_date
        effects = side_effects.enqueue_paid_side_effects(db, invoice)
        await db.flush()
        effect_ids = [effect.id for effect in effects]

    record_audit(
        db,
        action=AuditAction.PAYMENT_STATUS_UPDATED,
        entity_type="payment_invoice",
        entity_id=invoice.id,
        admin_id=admin_id,
        details={"from": previous, "to": status, "payment_date": payment_date.isoformat() if payment_date else None},
    )
    await db.commit()
    logger.info("Payment status updated", invoice_id=invoice_id, previous=previous, status=status)

    for effect_id in effect_ids:
        await side_effects.dispatch_side_effect(db, effect_id)

    cycle_completed = False
    if invoice_workflow.is_terminal(status):
        cycle_completed = await complete_cycle_if_settled(db, cycle_id)

    invoice = await get_invoice(db, invoice_id)
    effects = (await db.execute(queries.select_invoice_side_effects(invoice_id))).scalars().all()
    return invoice, list(effects), cycle_completed


async def complete_cycle_if_settled(db: AsyncSession, cycle_id: str) -> bool:
    """Complete an `invoicing` cycle once none of its invoices is open."""
    cycle = await get_cycle_by_id(db, cycle_id)
    if cycle.status != "invoicing":
        return False
    if (await db.execute(queries.count_open_cycle_invoices(cycle_id))).scalar():
        return False

    transition_cycle(cycle, "completed")
    await db.commit()
    logger.info("Verification cycle completed", cycle_id=cycle_id)
    return True


async def retry_side_effects(db: AsyncSession) -> tuple[int, int, int]:
    return await side_effects.dispatch_pending(db)


async def resend_invoice_notification(
    db: AsyncSession,
    invoice_id: str,
    notifier: InvoiceNotifier,
) -> tuple[PaymentInvoice, bool]:
    """
    Raises:
        NotFoundError: If invoice doesn't exist
        InvalidStatusError: Unless the invoice is pending or overdue
    """
    invoice = await get_invoice(db, invoice_id)
    invoice_workflow.require(invoice.status, "pending", "overdue")
    business = await get_business_snapshot(db, invoice.business_id)

    try:
        sent = await notifier.send_invoice_notification(invoice, business)
    except Exception:
        logger.exception("Invoice notification failed", invoice_id=invoice_id)
        sent = False

    if sent:
        invoice.notification_count += 1
        invoice.last_notified_at = utcnow()
        await db.commit()
        await db.refresh(invoice)
    return invoice, sent


async def mark_overdue_invoices(
    db: AsyncSession,
    today: date | None = None,
    admin_id: int | None = None,
) -> int:
    """Move pending invoices past their due date to `overdue`."""
    today = today or utcnow().date()
    invoices = (await db.execute(queries.select_overdue_candidates(today))).scalars().all()
    for invoice in invoices:
        apply_transition(invoice, invoice_workflow, "overdue", system=True)

    if invoices:
        record_audit(
            db,
            action=AuditAction.INVOICES_MARKED_OVERDUE,
            entity_type="payment_invoice",
            admin_id=admin_id,
            details={"invoice_ids": [invoice.id for invoice in invoices], "as_of": today.isoformat()},
        )
        await db.commit()
        logger.info("Invoices marked overdue", count=len(invoices))
    return len(invoices)


async def list_invoices(
    db: AsyncSession,
    page: int,
    limit: int,
    status: str | None = None,
    cycle_id: str | None = None,
) -> tuple[list[PaymentInvoice], int]:
    total = (await db.execute(queries.count_invoices(status, cycle_id))).scalar() or 0
    result = await db.execute(queries.select_invoices(status, cycle_id, offset_for(page, limit), limit))
    return list(result.scalars().all()), total


async def get_payment_statistics(db: AsyncSession, cycle_id: str) -> PaymentStatistics:
    await get_cycle_by_id(db, cycle_id)
    invoices = (await db.execute(queries.select_cycle_invoices(cycle_id))).scalars().all()
    batches = (await db.execute(queries.select_cycle_reward_batches(cycle_id))).scalars().all()

    zero = Decimal("0")
    paid = sum((i.total_amount for i in invoices if i.status == "paid"), zero)
    outstanding = sum((i.total_amount for i in invoices if i.status in ("pending", "overdue", "disputed")), zero)
    return PaymentStatistics(
        cycle_id=cycle_id,
        invoice_count=len(invoices),
        invoices_by_status=dict(Counter(invoice.status for invoice in invoices)),
        total_invoiced=float(sum((i.total_amount for i in invoices), zero)),
        total_paid=float(paid),
        total_outstanding=float(outstanding),
        total_admin_fees=float(sum((i.admin_fee for i in invoices), zero)),
        reward_batch_count=len(batches),
        reward_batch_amount=float(sum((b.total_reward_amount for b in batches), zero)),
    )


async def list_invoice_reward_batches(db: AsyncSession, invoice_id: str):
    await get_invoice(db, invoice_id)
    result = await db.execute(queries.select_invoice_reward_batches(invoice_id))
    return list(result.scalars().all())
