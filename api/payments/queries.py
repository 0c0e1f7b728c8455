# api/payments/queries.py
"""
SQLAlchemy query builders for invoicing and payment tracking.
"""
from datetime import date

from sqlalchemy import select, func

from db_models.payment_invoice import PaymentInvoice, CustomerRewardBatch
from db_models.payment_side_effect import PaymentSideEffect
from db_models.verification_database import VerificationDatabase, VerificationRecord


def count_cycle_invoices(cycle_id: str):
    return select(func.count(PaymentInvoice.id)).where(PaymentInvoice.cycle_id == cycle_id)


def count_open_cycle_invoices(cycle_id: str):
    return count_cycle_invoices(cycle_id).where(
        PaymentInvoice.status.not_in(("paid", "cancelled"))
    )


def select_cycle_invoices(cycle_id: str):
    return select(PaymentInvoice).where(PaymentInvoice.cycle_id == cycle_id)


def select_invoiceable_databases(cycle_id: str):
    return (
        select(VerificationDatabase)
        .where(
            VerificationDatabase.cycle_id == cycle_id,
            VerificationDatabase.status.in_(("submitted", "processed")),
        )
        .order_by(VerificationDatabase.business_id)
    )


def select_verified_records(database_id: str):
    return select(VerificationRecord).where(
        VerificationRecord.database_id == database_id,
        VerificationRecord.verification_status == "verified",
    )


def select_verified_records_for_business(cycle_id: str, business_id: str):
    return (
        select(VerificationRecord)
        .join(VerificationDatabase, VerificationDatabase.id == VerificationRecord.database_id)
        .where(
            VerificationDatabase.cycle_id == cycle_id,
            VerificationDatabase.business_id == business_id,
            VerificationRecord.verification_status == "verified",
        )
        .order_by(VerificationRecord.phone_number)
    )


def _filter_invoices(stmt, status: str | None, cycle_id: str | None):
    if status is not None:
        stmt = stmt.where(PaymentInvoice.status == status)
    if cycle_id is not None:
        stmt = stmt.where(PaymentInvoice.cycle_id == cycle_id)
    return stmt


def select_invoices(status: str | None, cycle_id: str | None, offset: int, limit: int):
    stmt = select(PaymentInvoice).order_by(PaymentInvoice.created_at.desc(), PaymentInvoice.id)
    return _filter_invoices(stmt, status, cycle_id).offset(offset).limit(limit)


def count_invoices(status: str | None, cycle_id: str | None):
    return _filter_invoices(select(func.count(PaymentInvoice.id)), status, cycle_id)


def select_overdue_candidates(today: date):
    return select(PaymentInvoice).where(
        PaymentInvoice.status == "pending",
        PaymentInvoice.due_date < today,
    )


def select_invoice_side_effects(invoice_id: str):
    return (
        select(PaymentSideEffect)
        .where(PaymentSideEffect.invoice_id == invoice_id)
        .order_by(PaymentSideEffect.created_at, PaymentSideEffect.kind)
    )


def select_pending_side_effects():
    return (
        select(PaymentSideEffect)
        .where(PaymentSideEffect.status == "pending")
        .order_by(PaymentSideEffect.created_at)
    )


def select_invoice_reward_phones(invoice_id: str):
    return select(CustomerRewardBatch.phone_number).where(CustomerRewardBatch.invoice_id == invoice_id)


def select_cycle_reward_batches(cycle_id: str):
    return select(CustomerRewardBatch).where(CustomerRewardBatch.cycle_id == cycle_id)


def select_invoice_reward_batches(invoice_id: str):
    return (
        select(CustomerRewardBatch)
        .where(CustomerRewardBatch.invoice_id == invoice_id)
        .order_by(CustomerRewardBatch.phone_number)
    )
