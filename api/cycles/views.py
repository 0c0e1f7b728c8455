# api/cycles/views.py
"""
Verification cycle management endpoints. Admin only.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser
from core.params import CycleId, Page, PageLimit, PageNumber, build_pagination
from .models import CycleCreate, CycleRead, CycleStatus, CycleStatusUpdate
from . import db_manager

router = APIRouter(prefix="/admin/verification/cycles", tags=["verification cycles"])


@router.post(
    "",
    response_model=CycleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a weekly verification cycle",
)
async def create_cycle_endpoint(
    payload: CycleCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> CycleRead:
    """
    Create the cycle for the week starting on `cycle_week` (a Monday).
    400 if the date is not a Monday, 409 if the week already has a cycle.
    """
    cycle = await db_manager.create_cycle(db, payload.cycle_week, created_by=admin.id)
    return CycleRead.model_validate(cycle)


@router.get(
    "",
    response_model=Page[CycleRead],
    summary="List verification cycles",
)
async def list_cycles_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 20,
    status: CycleStatus | None = None,
) -> Page[CycleRead]:
    cycles, total = await db_manager.list_cycles(db, page, limit, status)
    return Page[CycleRead](
        data=[CycleRead.model_validate(c) for c in cycles],
        pagination=build_pagination(page, limit, total),
    )


@router.get(
    "/{cycle_id}",
    response_model=CycleRead,
    summary="Get verification cycle by ID",
)
async def get_cycle_endpoint(
    cycle_id: CycleId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> CycleRead:
    cycle = await db_manager.get_cycle_by_id(db, cycle_id)
    return CycleRead.model_validate(cycle)


@router.put(
    "/{cycle_id}/status",
    response_model=CycleRead,
    summary="Advance or expire a verification cycle",
)
async def update_cycle_status_endpoint(
    cycle_id: CycleId,
    payload: CycleStatusUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> CycleRead:
    """
    Move the cycle to a new status. Only transitions allowed by the cycle
    state machine are accepted; anything else is 409.
    """
    cycle = await db_manager.update_cycle_status(db, cycle_id, payload.status, admin_id=admin.id)
    return CycleRead.model_validate(cycle)
