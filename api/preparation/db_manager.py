# api/preparation/db_manager.py
"""
Business logic for building per-business verification databases.

`start_preparation` only records a job; `run_preparation_job` does the work
in a background task with its own session.
"""
import time
from collections import defaultdict
from datetime import date, datetime, time as dt_time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from core.audit import AuditAction, record_audit
from core.errors import ConflictError, NotFoundError, ServiceError
from core.params import offset_for
from core.workflow import apply_transition, cycle_workflow, database_workflow
from db_base import utcnow
from db_models.business import Transaction
from db_models.preparation_job import PreparationJob
from db_models.verification_database import VerificationDatabase, VerificationRecord
from api.cycles.db_manager import get_cycle_by_id
from . import queries


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


class NoTransactionsError(ConflictError):
    """Raised when a cycle's verification window holds no transactions."""
    pass


def make_job_id(cycle_id: str) -> str:
    return f"prep_{cycle_id}_{int(time.time() * 1000)}"


def verification_window(cycle_week: date) -> tuple[datetime, datetime]:
    """A cycle verifies the transactions of the seven days before its Monday."""
    end = datetime.combine(cycle_week, dt_time.min, tzinfo=timezone.utc)
    return end - timedelta(days=7), end


def reward_for(transaction: Transaction) -> Decimal:
    reward = Decimal(transaction.amount) * Decimal(transaction.reward_percentage) / Decimal(100)
    return reward.quantize(CENT, rounding=ROUND_HALF_UP)


async def get_database(
    db: AsyncSession,
    database_id: str,
    cycle_id: str | None = None,
) -> VerificationDatabase:
    """
    Get a verification database by ID, optionally scoped to a cycle.

    Raises:
        NotFoundError: If it doesn't exist or belongs to another cycle
    """
    database = await db.get(VerificationDatabase, database_id)
    if database is None or (cycle_id is not None and database.cycle_id != cycle_id):
        raise NotFoundError("Verification database not found", details={"database_id": database_id})
    return database


async def start_preparation(
    db: AsyncSession,
    cycle_id: str,
    admin_id: int | None = None,
) -> PreparationJob:
    """
    Record a pending preparation job for the cycle.

    Raises:
        NotFoundError: If cycle doesn't exist
        InvalidStatusError: If the cycle is not `preparing`
        ConflictError: If a job for the cycle is already pending or running
    """
    cycle = await get_cycle_by_id(db, cycle_id)
    cycle_workflow.require(cycle.status, "preparing")

    now = utcnow()
    stale_before = now - timedelta(seconds=settings.PREPARATION_JOB_TIMEOUT_SECONDS)
    in_flight = (await db.execute(queries.select_in_flight_jobs(cycle_id))).scalars().all()
    for job in in_flight:
        if job.created_at >= stale_before:
            raise ConflictError(
                "Database preparation already in progress for this cycle",
                details={"job_id": job.id},
            )
        # Worker died without finishing; free the cycle
        job.status = "failed"
        job.error_message = "Preparation job timed out"
        job.completed_at = now
        logger.warning("Stale preparation job marked failed", job_id=job.id, cycle_id=cycle_id)

    job = PreparationJob(id=make_job_id(cycle.id), cycle_id=cycle.id, status="pending")
    db.add(job)
    record_audit(
        db,
        action=AuditAction.PREPARATION_STARTED,
        entity_type="weekly_verification_cycle",
        entity_id=cycle.id,
        admin_id=admin_id,
        details={"job_id": job.id},
    )
    await db.commit()
    await db.refresh(job)
    logger.info("Database preparation queued", job_id=job.id, cycle_id=cycle_id)
    return job


async def run_preparation_job(session_factory: async_sessionmaker[AsyncSession], job_id: str) -> None:
    """Background task body. Never raises; failures are stored on the job."""
    async with session_factory() as db:
        job = await db.get(PreparationJob, job_id)
        if job is None:
            logger.warning("Preparation job vanished before it started", job_id=job_id)
            return

        job.status = "running"
        job.started_at = utcnow()
        await db.commit()

        try:
            created = await build_cycle_databases(db, job.cycle_id)
        except ServiceError as exc:
            await db.rollback()
            logger.warning("Database preparation failed", job_id=job_id, error=exc.message)
            await _mark_job_failed(db, job_id, exc.message)
            return
        except Exception as exc:
            await db.rollback()
            logger.exception("Database preparation crashed", job_id=job_id)
            await _mark_job_failed(db, job_id, str(exc) or exc.__class__.__name__)
            return

        job = await db.get(PreparationJob, job_id)
        job.status = "completed"
        job.databases_created = created
        job.completed_at = utcnow()
        await db.commit()
        logger.info("Database preparation completed", job_id=job_id, databases=created)


async def _mark_job_failed(db: AsyncSession, job_id: str, message: str) -> None:
    job = await db.get(PreparationJob, job_id)
    job.status = "failed"
    job.error_message = message
    job.completed_at = utcnow()
    await db.commit()


async def build_cycle_databases(db: AsyncSession, cycle_id: str) -> int:
    """
    Snapshot every active business's window transactions into a verification
    database and move the cycle to `ready`. Returns how many databases were
    built. Databases already submitted are left untouched.
    """
    cycle = await get_cycle_by_id(db, cycle_id)
    cycle_workflow.require(cycle.status, "preparing")

    start, end = verification_window(cycle.cycle_week)
    transactions = (await db.execute(queries.select_window_transactions(start, end))).scalars().all()
    if not transactions:
        raise NoTransactionsError(
            "No transactions found for verification window",
            details={"window_start": start.isoformat(), "window_end": end.isoformat()},
        )

    by_business: dict[str, list[Transaction]] = defaultdict(list)
    for transaction in transactions:
        by_business[transaction.business_id].append(transaction)

    existing = {
        database.business_id: database
        for database in (await db.execute(queries.select_cycle_databases(cycle_id))).scalars()
    }
    deadline = utcnow() + timedelta(days=settings.VERIFICATION_DEADLINE_DAYS)

    built = 0
    for business_id, business_transactions in by_business.items():
        database = existing.get(business_id)
        if database is None:
            database = VerificationDatabase(
                cycle_id=cycle_id,
                business_id=business_id,
                status="preparing",
                deadline_at=deadline,
            )
            db.add(database)
            await db.flush()
        elif database.status in ("submitted", "processed"):
            continue
        else:
            if database.status == "ready":
                apply_transition(database, database_workflow, "preparing")
            database.deadline_at = deadline

        await snapshot_records(db, database, business_transactions)
        apply_transition(database, database_workflow, "ready")
        built += 1

    cycle.total_businesses = len(by_business)
    cycle.prepared_businesses = len(by_business)
    apply_transition(cycle, cycle_workflow, "ready")
    await db.commit()
    return built


async def snapshot_records(
    db: AsyncSession,
    database: VerificationDatabase,
    transactions: list[Transaction],
) -> None:
    """Replace the database's records with a fresh copy of `transactions`."""
    await db.execute(queries.delete_database_records(database.id))
    for transaction in transactions:
        db.add(
            VerificationRecord(
                database_id=database.id,
                transaction_id=transaction.id,
                phone_number=transaction.phone_number,
                amount=transaction.amount,
                reward_amount=reward_for(transaction),
                transaction_date=transaction.transaction_date,
                verification_status="pending",
            )
        )
    database.transaction_count = len(transactions)
    database.verified_count = 0


async def get_preparation_status(db: AsyncSession, cycle_id: str) -> PreparationJob:
    await get_cycle_by_id(db, cycle_id)
    job = (await db.execute(queries.select_latest_job(cycle_id))).scalar_one_or_none()
    if job is None:
        raise NotFoundError("No preparation job found for this cycle", details={"cycle_id": cycle_id})
    return job


async def list_cycle_databases(
    db: AsyncSession,
    cycle_id: str,
    page: int,
    limit: int,
    status: str | None = None,
) -> tuple[list[VerificationDatabase], int]:
    await get_cycle_by_id(db, cycle_id)
    total = (await db.execute(queries.count_cycle_databases(cycle_id, status))).scalar() or 0
    result = await db.execute(
        queries.select_cycle_databases_page(cycle_id, status, offset_for(page, limit), limit)
    )
    return list(result.scalars().all()), total


async def load_records(db: AsyncSession, database_id: str) -> list[VerificationRecord]:
    result = await db.execute(
        select(VerificationRecord)
        .where(VerificationRecord.database_id == database_id)
        .order_by(VerificationRecord.transaction_date, VerificationRecord.id)
    )
    return list(result.scalars().all())
