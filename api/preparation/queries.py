# api/preparation/queries.py
"""
SQLAlchemy query builders for database preparation.
"""
from datetime import datetime

from sqlalchemy import select, func, delete

from db_models.business import Business, Transaction
from db_models.preparation_job import PreparationJob
from db_models.verification_database import VerificationDatabase, VerificationRecord


def select_in_flight_jobs(cycle_id: str):
    return select(PreparationJob).where(
        PreparationJob.cycle_id == cycle_id,
        PreparationJob.status.in_(("pending", "running")),
    )


def select_latest_job(cycle_id: str):
    return (
        select(PreparationJob)
        .where(PreparationJob.cycle_id == cycle_id)
        .order_by(PreparationJob.created_at.desc())
        .limit(1)
    )


def select_window_transactions(start: datetime, end: datetime, business_id: str | None = None):
    """Transactions of active businesses inside [start, end)."""
    stmt = (
        select(Transaction)
        .join(Business, Business.id == Transaction.business_id)
        .where(
            Business.is_active.is_(True),
            Transaction.transaction_date >= start,
            Transaction.transaction_date < end,
        )
        .order_by(Transaction.business_id, Transaction.transaction_date)
    )
    if business_id is not None:
        stmt = stmt.where(Transaction.business_id == business_id)
    return stmt


def select_cycle_databases(cycle_id: str):
    return select(VerificationDatabase).where(VerificationDatabase.cycle_id == cycle_id)


def _filter_status(stmt, status: str | None):
    if status is not None:
        stmt = stmt.where(VerificationDatabase.status == status)
    return stmt


def select_cycle_databases_page(cycle_id: str, status: str | None, offset: int, limit: int):
    stmt = select_cycle_databases(cycle_id).order_by(VerificationDatabase.created_at, VerificationDatabase.id)
    return _filter_status(stmt, status).offset(offset).limit(limit)


def count_cycle_databases(cycle_id: str, status: str | None):
    stmt = select(func.count(VerificationDatabase.id)).where(VerificationDatabase.cycle_id == cycle_id)
    return _filter_status(stmt, status)


def delete_database_records(database_id: str):
    return delete(VerificationRecord).where(VerificationRecord.database_id == database_id)
