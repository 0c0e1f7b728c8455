# api/submissions/db_manager.py
"""
Business-side access to verification databases and result submission.
"""
import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.audit import AuditAction, record_audit
from core.errors import DeadlineExpiredError, NotFoundError, ValidationFailedError
from core.params import offset_for
from core.workflow import apply_transition, cycle_workflow, database_workflow
from db_base import utcnow
from db_models.verification_database import VerificationDatabase, VerificationRecord
from api.cycles.db_manager import get_cycle_by_id
from api.preparation.db_manager import get_database, load_records
from .models import RecordDecision


logger = structlog.get_logger(__name__)


async def get_business_database(
    db: AsyncSession,
    business_id: str,
    database_id: str,
) -> VerificationDatabase:
    """Databases of other businesses are reported as missing."""
    database = await get_database(db, database_id)
    if database.business_id != business_id:
        raise NotFoundError("Verification database not found", details={"database_id": database_id})
    return database


async def list_business_databases(
    db: AsyncSession,
    business_id: str,
    page: int,
    limit: int,
) -> tuple[list[VerificationDatabase], int]:
    where = VerificationDatabase.business_id == business_id
    total = (await db.execute(select(func.count(VerificationDatabase.id)).where(where))).scalar() or 0
    result = await db.execute(
        select(VerificationDatabase)
        .where(where)
        .order_by(VerificationDatabase.created_at.desc())
        .offset(offset_for(page, limit))
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def list_business_records(
    db: AsyncSession,
    business_id: str,
    database_id: str,
) -> list[VerificationRecord]:
    database = await get_business_database(db, business_id, database_id)
    return await load_records(db, database.id)


async def submit_verification(
    db: AsyncSession,
    business_id: str,
    database_id: str,
    decisions: list[RecordDecision],
) -> VerificationDatabase:
    """
    Store the business's verified/fake decisions and lock the database.

    Raises:
        NotFoundError: If the database isn't the business's
        InvalidStatusError: If the cycle is not distributed or collecting
        DeadlineExpiredError: If the verification deadline has passed
        InvalidTransitionError: If the database was already submitted
        ValidationFailedError: If a decision names a record of another database
    """
    database = await get_business_database(db, business_id, database_id)
    cycle = await get_cycle_by_id(db, database.cycle_id)
    cycle_workflow.require(cycle.status, "distributed", "collecting")

    if utcnow() > database.deadline_at:
        raise DeadlineExpiredError(
            "Verification deadline has passed for this database",
            details={"deadline_at": database.deadline_at.isoformat()},
        )
    database_workflow.ensure_transition(database.status, "submitted")

    records = {record.id: record for record in await load_records(db, database.id)}
    unknown = [d.record_id for d in decisions if d.record_id not in records]
    if unknown:
        raise ValidationFailedError(
            "Records do not belong to this verification database",
            details={"record_ids": unknown},
        )

    for decision in decisions:
        records[decision.record_id].verification_status = decision.verification_status

    verified = sum(1 for r in records.values() if r.verification_status == "verified")
    fake = sum(1 for r in records.values() if r.verification_status == "fake")
    database.verified_count = verified
    database.submitted_at = utcnow()
    apply_transition(database, database_workflow, "submitted")

    if cycle.status == "distributed":
        apply_transition(cycle, cycle_workflow, "collecting")

    record_audit(
        db,
        action=AuditAction.DATABASE_SUBMITTED,
        entity_type="verification_database",
        entity_id=database.id,
        details={"business_id": business_id, "verified": verified, "fake": fake},
    )
    await db.commit()
    await db.refresh(database)
    logger.info(
        "Verification submitted",
        database_id=database.id,
        business_id=business_id,
        verified=verified,
        fake=fake,
    )
    return database
