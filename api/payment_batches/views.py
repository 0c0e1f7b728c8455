# api/payment_batches/views.py
"""
Customer reward payout batch endpoints. Admin only.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser
from core.params import BatchId, CycleId
from .models import PaymentBatchProcessResult, PaymentBatchRead
from .payouts import get_payout_client
from . import db_manager

router = APIRouter(prefix="/admin/verification", tags=["payment batches"])


@router.post(
    "/cycles/{cycle_id}/payment-batch",
    response_model=PaymentBatchRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payout batch from the cycle's unassigned rewards",
)
async def create_payment_batch_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> PaymentBatchRead:
    batch = await db_manager.create_payment_batch(db, cycle_id, admin_id=admin.id)
    return PaymentBatchRead.model_validate(batch)


@router.get(
    "/cycles/{cycle_id}/payment-batches",
    response_model=list[PaymentBatchRead],
    summary="List a cycle's payout batches, oldest first",
)
async def list_payment_batches_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> list[PaymentBatchRead]:
    batches = await db_manager.list_payment_batches(db, cycle_id)
    return [PaymentBatchRead.model_validate(batch) for batch in batches]


@router.get(
    "/payment-batches/{batch_id}",
    response_model=PaymentBatchRead,
    summary="Get payment batch by ID",
)
async def get_payment_batch_endpoint(
    batch_id: BatchId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> PaymentBatchRead:
    batch = await db_manager.get_payment_batch(db, batch_id)
    return PaymentBatchRead.model_validate(batch)


@router.post(
    "/payment-batches/{batch_id}/process",
    response_model=PaymentBatchProcessResult,
    summary="Pay out a payment batch",
)
async def process_payment_batch_endpoint(
    batch_id: BatchId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    payout_client=Depends(get_payout_client),
) -> PaymentBatchProcessResult:
    """
    Runs the payouts under the batch's job lock. 409 `JOB_LOCKED` while
    another run holds a live lease.
    """
    batch, sent, failed = await db_manager.process_payment_batch(
        db, batch_id, payout_client, admin_id=admin.id
    )
    return PaymentBatchProcessResult(
        batch=PaymentBatchRead.model_validate(batch),
        sent=sent,
        failed=failed,
    )
