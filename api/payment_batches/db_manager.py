# api/payment_batches/db_manager.py
"""
Business logic for customer reward payout batches.

A cycle can have several batches: each one sweeps up the reward batches that
were created since the previous one, so invoices paid late are still paid out.

A batch is processed by one worker at a time. Ownership is a lease stored on
the batch row (`job_lock_key`, `lock_expires_at`); a lease that has run out
can be taken over by the next worker. The holder renews the lease before
every payout and stops as soon as a renewal fails.
"""
from datetime import timedelta
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.audit import AuditAction, record_audit
from core.errors import ConflictError, JobLockedError, NotFoundError, PayoutError
from core.workflow import apply_transition, payment_batch_workflow
from db_base import new_uuid, utcnow
from db_models.payment_batch import PaymentBatch
from api.cycles.db_manager import get_cycle_by_id
from . import queries


logger = structlog.get_logger(__name__)


async def get_payment_batch(db: AsyncSession, batch_id: str, *, fresh: bool = False) -> PaymentBatch:
    """
    Raises:
        NotFoundError: If batch doesn't exist
    """
    batch = await db.get(PaymentBatch, batch_id, populate_existing=fresh)
    if batch is None:
        raise NotFoundError("Payment batch not found", details={"batch_id": batch_id})
    return batch


async def list_payment_batches(db: AsyncSession, cycle_id: str) -> list[PaymentBatch]:
    await get_cycle_by_id(db, cycle_id)
    return list((await db.execute(queries.select_batches_for_cycle(cycle_id))).scalars().all())


async def create_payment_batch(
    db: AsyncSession,
    cycle_id: str,
    admin_id: int | None = None,
) -> PaymentBatch:
    """
    Collect the cycle's unassigned pending reward batches into a new payout batch.

    Raises:
        NotFoundError: If cycle doesn't exist
        ConflictError: If nothing is payable, or a concurrent call claimed the rewards first
    """
    await get_cycle_by_id(db, cycle_id)

    rewards = (await db.execute(queries.select_unassigned_reward_batches(cycle_id))).scalars().all()
    if not rewards:
        raise ConflictError("No pending customer reward batches for this cycle")

    batch = PaymentBatch(
        cycle_id=cycle_id,
        status="pending",
        total_amount=sum((reward.total_reward_amount for reward in rewards), Decimal("0")),
        reward_batch_count=len(rewards),
    )
    db.add(batch)
    await db.flush()

    reward_ids = [reward.id for reward in rewards]
    claimed = await db.execute(queries.claim_reward_batches(reward_ids, batch.id))
    if claimed.rowcount != len(reward_ids):
        await db.rollback()
        raise ConflictError(
            "Reward batches were claimed by another payment batch",
            details={"cycle_id": cycle_id},
        )
    for reward in rewards:
        reward.payment_batch_id = batch.id

    record_audit(
        db,
        action=AuditAction.PAYMENT_BATCH_CREATED,
        entity_type="payment_batch",
        entity_id=batch.id,
        admin_id=admin_id,
        details={"cycle_id": cycle_id, "reward_batches": len(rewards), "total_amount": str(batch.total_amount)},
    )
    await db.commit()

    await db.refresh(batch)
    logger.info("Payment batch created", batch_id=batch.id, cycle_id=cycle_id, reward_batches=len(rewards))
    return batch


def _lease_expiry(lease_seconds: int | None):
    lease = lease_seconds if lease_seconds is not None else settings.JOB_LOCK_LEASE_SECONDS
    return utcnow() + timedelta(seconds=lease)


async def acquire_job_lock(
    db: AsyncSession,
    batch_id: str,
    lock_key: str,
    lease_seconds: int | None = None,
) -> bool:
    """Take the batch lease for `lock_key`. Returns False if another holder's lease is live."""
    result = await db.execute(
        queries.acquire_lock(batch_id, lock_key, utcnow(), _lease_expiry(lease_seconds))
    )
    taken = result.rowcount == 1
    await db.commit()
    return taken


async def renew_job_lock(
    db: AsyncSession,
    batch_id: str,
    lock_key: str,
    lease_seconds: int | None = None,
) -> bool:
    """Push the lease expiry forward. Returns False if `lock_key` no longer holds it."""
    result = await db.execute(queries.renew_lock(batch_id, lock_key, _lease_expiry(lease_seconds)))
    renewed = result.rowcount == 1
    await db.commit()
    return renewed


async def release_job_lock(db: AsyncSession, batch_id: str, lock_key: str) -> bool:
    """Clear the lease if `lock_key` still holds it."""
    result = await db.execute(queries.release_lock(batch_id, lock_key))
    released = result.rowcount == 1
    await db.commit()
    return released


async def _keep_lease(db: AsyncSession, batch_id: str, lock_key: str) -> None:
    if not await renew_job_lock(db, batch_id, lock_key):
        logger.warning("Payment batch lease lost", batch_id=batch_id)
        raise JobLockedError("Payment batch lease was taken by another job", details={"batch_id": batch_id})


async def process_payment_batch(
    db: AsyncSession,
    batch_id: str,
    payout_client,
    admin_id: int | None = None,
) -> tuple[PaymentBatch, int, int]:
    """
    Pay out every pending or previously failed reward batch assigned to the batch.

    Returns:
        (batch, payouts sent, payouts failed)

    Raises:
        NotFoundError: If batch doesn't exist
        JobLockedError: If another worker holds the lease, or takes it over mid-run
        InvalidTransitionError: If the batch is already completed
    """
    await get_payment_batch(db, batch_id)

    lock_key = new_uuid()
    if not await acquire_job_lock(db, batch_id, lock_key):
        raise JobLockedError("Payment batch is locked by another job", details={"batch_id": batch_id})

    sent = failed = 0
    try:
        batch = await get_payment_batch(db, batch_id, fresh=True)
        # A holder whose lease ran out may have left the batch mid-run
        if batch.status != "processing":
            apply_transition(batch, payment_batch_workflow, "processing")
            await db.commit()

        rewards = (await db.execute(queries.select_payable_reward_batches(batch_id))).scalars().all()
        for reward in rewards:
            await _keep_lease(db, batch_id, lock_key)
            try:
                reference = await payout_client.send_payout(
                    reward.phone_number,
                    reward.total_reward_amount,
                    f"Feedback reward {batch.cycle_id[:8]}",
                )
            except PayoutError as exc:
                reward.payout_status = "failed"
                failed += 1
                logger.warning(
                    "Reward payout failed",
                    error=exc.code,
                    reward_batch_id=reward.id,
                    details=exc.details,
                )
            else:
                reward.payout_status = "sent"
                reward.payout_reference = reference
                sent += 1
            await db.commit()

        await _keep_lease(db, batch_id, lock_key)
        apply_transition(batch, payment_batch_workflow, "failed" if failed else "completed")
        batch.processed_at = utcnow()
        record_audit(
            db,
            action=AuditAction.PAYMENT_BATCH_PROCESSED,
            entity_type="payment_batch",
            entity_id=batch_id,
            admin_id=admin_id,
            details={"sent": sent, "failed": failed, "status": batch.status},
        )
        await db.commit()
    finally:
        await db.rollback()
        await release_job_lock(db, batch_id, lock_key)

    batch = await get_payment_batch(db, batch_id, fresh=True)
    logger.info("Payment batch processed", batch_id=batch_id, status=batch.status, sent=sent, failed=failed)
    return batch, sent, failed
