# api/preparation/views.py
"""
Database preparation endpoints. Admin only.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db import get_session, get_session_factory
from core.deps import AdminUser
from core.params import CycleId, Page, PageLimit, PageNumber, build_pagination
from .models import DatabaseRead, DatabaseStatus, PreparationJobRead, PreparationStarted
from . import db_manager

router = APIRouter(prefix="/admin/verification/cycles", tags=["database preparation"])


@router.post(
    "/{cycle_id}/prepare",
    response_model=PreparationStarted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start building verification databases for a cycle",
)
async def start_preparation_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> PreparationStarted:
    """
    Queue the preparation job and return its id immediately.
    409 if the cycle is not `preparing` or a job is already in flight.
    """
    job = await db_manager.start_preparation(db, cycle_id, admin_id=admin.id)
    background_tasks.add_task(db_manager.run_preparation_job, session_factory, job.id)
    return PreparationStarted(
        message="Database preparation started",
        job_id=job.id,
        status=job.status,
    )


@router.get(
    "/{cycle_id}/preparation-status",
    response_model=PreparationJobRead,
    summary="Get the latest preparation job of a cycle",
)
async def get_preparation_status_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> PreparationJobRead:
    job = await db_manager.get_preparation_status(db, cycle_id)
    return PreparationJobRead.model_validate(job)


@router.get(
    "/{cycle_id}/databases",
    response_model=Page[DatabaseRead],
    summary="List the verification databases of a cycle",
)
async def list_cycle_databases_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 20,
    status: DatabaseStatus | None = None,
) -> Page[DatabaseRead]:
    databases, total = await db_manager.list_cycle_databases(db, cycle_id, page, limit, status)
    return Page[DatabaseRead](
        data=[DatabaseRead.model_validate(d) for d in databases],
        pagination=build_pagination(page, limit, total),
    )
