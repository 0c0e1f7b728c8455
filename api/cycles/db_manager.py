# api/cycles/db_manager.py
"""
Business logic for verification cycle management.
"""
from datetime import date

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.audit import AuditAction, record_audit
from core.errors import ConflictError, NotFoundError, ValidationFailedError
from core.params import offset_for
from core.workflow import apply_transition, cycle_workflow
from db_base import utcnow
from db_models.verification_cycle import VerificationCycle
from . import queries


logger = structlog.get_logger(__name__)

MONDAY = 0


async def get_cycle_by_id(db: AsyncSession, cycle_id: str) -> VerificationCycle:
    """Get a cycle by ID. Raises NotFoundError if not found."""
    result = await db.execute(queries.select_cycle_by_id(cycle_id))
    cycle = result.scalar_one_or_none()
    if cycle is None:
        raise NotFoundError("Verification cycle not found", details={"cycle_id": cycle_id})
    return cycle


async def create_cycle(
    db: AsyncSession,
    cycle_week: date,
    created_by: int | None = None,
) -> VerificationCycle:
    """
    Create a verification cycle for the week starting on `cycle_week`.

    Raises:
        ValidationFailedError: If `cycle_week` is not a Monday
        ConflictError: If a cycle already exists for that week
    """
    if cycle_week.weekday() != MONDAY:
        raise ValidationFailedError(
            "Cycle week must start on a Monday",
            details={"cycle_week": cycle_week.isoformat()},
        )

    result = await db.execute(queries.select_cycle_by_week(cycle_week))
    if result.scalar_one_or_none() is not None:
        raise ConflictError("Verification cycle for this week already exists")

    cycle = VerificationCycle(
        cycle_week=cycle_week,
        status="preparing",
        created_by=created_by,
    )
    db.add(cycle)
    await db.flush()
    record_audit(
        db,
        action=AuditAction.CYCLE_CREATED,
        entity_type="weekly_verification_cycle",
        entity_id=cycle.id,
        admin_id=created_by,
        details={"cycle_week": cycle_week.isoformat(), "status": cycle.status},
    )
    try:
        await db.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent create for the same week
        await db.rollback()
        raise ConflictError("Verification cycle for this week already exists") from exc

    await db.refresh(cycle)
    logger.info("Verification cycle created", cycle_id=cycle.id, cycle_week=cycle_week.isoformat())
    return cycle


async def list_cycles(
    db: AsyncSession,
    page: int,
    limit: int,
    status: str | None = None,
) -> tuple[list[VerificationCycle], int]:
    """Return one page of cycles plus the total matching count."""
    total = (await db.execute(queries.count_cycles(status))).scalar() or 0
    result = await db.execute(queries.select_cycles(status, offset_for(page, limit), limit))
    return list(result.scalars().all()), total


async def update_cycle_status(
    db: AsyncSession,
    cycle_id: str,
    status: str,
    admin_id: int | None = None,
) -> VerificationCycle:
    """
    Move a cycle to `status` if the cycle state machine allows it.

    Raises:
        NotFoundError: If cycle doesn't exist
        InvalidTransitionError: If the transition is not allowed
    """
    cycle = await get_cycle_by_id(db, cycle_id)
    previous = transition_cycle(cycle, status)

    record_audit(
        db,
        action=AuditAction.CYCLE_STATUS_UPDATED,
        entity_type="weekly_verification_cycle",
        entity_id=cycle.id,
        admin_id=admin_id,
        details={"from": previous, "to": status},
    )
    await db.commit()
    await db.refresh(cycle)
    logger.info("Cycle status updated", cycle_id=cycle.id, previous=previous, status=status)
    return cycle


def transition_cycle(cycle: VerificationCycle, status: str) -> str:
    """Apply a validated status change; callers commit."""
    previous = apply_transition(cycle, cycle_workflow, status)
    if status == "completed":
        cycle.completed_at = utcnow()
    return previous
