# api/payments/views.py
"""
Invoicing and payment tracking endpoints. Admin only.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser
from core.params import (
    UUID_V4_PATTERN,
    CycleId,
    InvoiceId,
    Page,
    PageLimit,
    PageNumber,
    build_pagination,
)
from .models import (
    InvoiceGenerationResult,
    InvoiceRead,
    InvoiceStatus,
    NotificationResult,
    OverdueResult,
    PaymentStatistics,
    PaymentStatusResult,
    PaymentStatusUpdate,
    RewardBatchRead,
    SideEffectRead,
    SideEffectRetryResult,
)
from .notifications import InvoiceNotifier, get_notifier
from . import db_manager

router = APIRouter(prefix="/admin/verification", tags=["payments"])


@router.post(
    "/cycles/{cycle_id}/invoices",
    response_model=InvoiceGenerationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Generate invoices for a cycle",
)
async def generate_invoices_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> InvoiceGenerationResult:
    """
    One invoice per business with verified records. The cycle must be
    `processing`; a second call for the same cycle is 409.
    """
    return await db_manager.generate_invoices(db, cycle_id, admin_id=admin.id)


@router.get(
    "/cycles/{cycle_id}/payment-statistics",
    response_model=PaymentStatistics,
    summary="Payment totals for a cycle",
)
async def get_payment_statistics_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> PaymentStatistics:
    return await db_manager.get_payment_statistics(db, cycle_id)


@router.get("/invoices", response_model=Page[InvoiceRead], summary="List payment invoices")
async def list_invoices_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 20,
    status: InvoiceStatus | None = None,
    cycle_id: Annotated[str | None, Query(pattern=UUID_V4_PATTERN)] = None,
) -> Page[InvoiceRead]:
    invoices, total = await db_manager.list_invoices(db, page, limit, status, cycle_id)
    return Page[InvoiceRead](
        data=[InvoiceRead.model_validate(i) for i in invoices],
        pagination=build_pagination(page, limit, total),
    )


@router.post(
    "/invoices/mark-overdue",
    response_model=OverdueResult,
    summary="Mark pending invoices past their due date as overdue",
)
async def mark_overdue_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> OverdueResult:
    updated = await db_manager.mark_overdue_invoices(db, admin_id=admin.id)
    return OverdueResult(updated=updated)


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead, summary="Get payment invoice")
async def get_invoice_endpoint(
    invoice_id: InvoiceId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    invoice = await db_manager.get_invoice(db, invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.put(
    "/invoices/{invoice_id}/payment",
    response_model=PaymentStatusResult,
    summary="Update invoice payment status",
)
async def update_payment_status_endpoint(
    invoice_id: InvoiceId,
    payload: PaymentStatusUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> PaymentStatusResult:
    """
    Allowed transitions:

    - pending -> paid, disputed, cancelled
    - disputed -> paid, cancelled
    - overdue -> paid, disputed, cancelled

    `paid` requires `payment_date` and triggers feedback database delivery
    and customer reward batch creation.
    """
    invoice, effects, cycle_completed = await db_manager.update_payment_status(
        db,
        invoice_id,
        payload.status,
        payment_date=payload.payment_date,
        notes=payload.notes,
        admin_id=admin.id,
    )
    return PaymentStatusResult(
        invoice=InvoiceRead.model_validate(invoice),
        side_effects=[SideEffectRead.model_validate(e) for e in effects],
        cycle_completed=cycle_completed,
    )


@router.post(
    "/invoices/{invoice_id}/resend-notification",
    response_model=NotificationResult,
    summary="Resend the invoice notification",
)
async def resend_notification_endpoint(
    invoice_id: InvoiceId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    notifier: InvoiceNotifier = Depends(get_notifier),
) -> NotificationResult:
    """Only pending and overdue invoices can be re-notified."""
    invoice, sent = await db_manager.resend_invoice_notification(db, invoice_id, notifier)
    return NotificationResult(
        invoice_id=invoice.id,
        sent=sent,
        notification_count=invoice.notification_count,
    )


@router.get(
    "/invoices/{invoice_id}/reward-batches",
    response_model=list[RewardBatchRead],
    summary="List customer reward batches created for an invoice",
)
async def list_reward_batches_endpoint(
    invoice_id: InvoiceId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> list[RewardBatchRead]:
    batches = await db_manager.list_invoice_reward_batches(db, invoice_id)
    return [RewardBatchRead.model_validate(b) for b in batches]


@router.post(
    "/side-effects/retry",
    response_model=SideEffectRetryResult,
    summary="Retry pending payment side effects",
)
async def retry_side_effects_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> SideEffectRetryResult:
    processed, completed, failed = await db_manager.retry_side_effects(db)
    return SideEffectRetryResult(processed=processed, completed=completed, failed=failed)
