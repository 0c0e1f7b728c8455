# api/payment_batches/queries.py
from datetime import datetime

from sqlalchemy import select, update, or_

from db_models.payment_batch import PaymentBatch
from db_models.payment_invoice import CustomerRewardBatch


def select_batches_for_cycle(cycle_id: str):
    return (
        select(PaymentBatch)
        .where(PaymentBatch.cycle_id == cycle_id)
        .order_by(PaymentBatch.created_at, PaymentBatch.id)
    )


def select_unassigned_reward_batches(cycle_id: str):
    return (
        select(CustomerRewardBatch)
        .where(
            CustomerRewardBatch.cycle_id == cycle_id,
            CustomerRewardBatch.payout_status == "pending",
            CustomerRewardBatch.payment_batch_id.is_(None),
        )
        .order_by(CustomerRewardBatch.created_at, CustomerRewardBatch.id)
    )


def select_payable_reward_batches(batch_id: str):
    """Rewards still owed; failed payouts are retried on the next run."""
    return (
        select(CustomerRewardBatch)
        .where(
            CustomerRewardBatch.payment_batch_id == batch_id,
            CustomerRewardBatch.payout_status.in_(("pending", "failed")),
        )
        .order_by(CustomerRewardBatch.created_at, CustomerRewardBatch.id)
    )


def acquire_lock(batch_id: str, lock_key: str, now: datetime, expires_at: datetime):
    """Take the lease if it is free or has run out."""
    return (
        update(PaymentBatch)
        .where(
            PaymentBatch.id == batch_id,
            or_(
                PaymentBatch.job_lock_key.is_(None),
                PaymentBatch.lock_expires_at < now,
            ),
        )
        .values(job_lock_key=lock_key, lock_expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )


def release_lock(batch_id: str, lock_key: str):
    return (
        update(PaymentBatch)
        .where(PaymentBatch.id == batch_id, PaymentBatch.job_lock_key == lock_key)
        .values(job_lock_key=None, lock_expires_at=None)
        .execution_options(synchronize_session=False)
    )


def renew_lock(batch_id: str, lock_key: str, expires_at: datetime):
    """Extend the lease; matches nothing once another worker has taken it."""
    return (
        update(PaymentBatch)
        .where(PaymentBatch.id == batch_id, PaymentBatch.job_lock_key == lock_key)
        .values(lock_expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )


def claim_reward_batches(reward_ids: list[str], batch_id: str):
    return (
        update(CustomerRewardBatch)
        .where(
            CustomerRewardBatch.id.in_(reward_ids),
            CustomerRewardBatch.payment_batch_id.is_(None),
        )
        .values(payment_batch_id=batch_id)
        .execution_options(synchronize_session=False)
    )
