# api/security/views.py
"""
Security observability endpoints: audit trail and intrusion events. Admin only.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from core.deps import AdminUser
from core.params import EventId, Page, PageLimit, PageNumber, build_pagination
from .models import (
    AuditLogRead,
    IncidentStatus,
    IntrusionEventCreate,
    IntrusionEventRead,
    IntrusionEventUpdate,
    IntrusionSummary,
    IntrusionType,
)
from . import db_manager

router = APIRouter(prefix="/admin/security", tags=["security"])


@router.get("/audit-logs", response_model=Page[AuditLogRead], summary="List audit log entries")
async def list_audit_logs_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 50,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> Page[AuditLogRead]:
    entries, total = await db_manager.list_audit_logs(db, page, limit, action, entity_type, entity_id)
    return Page[AuditLogRead](
        data=[AuditLogRead.model_validate(e) for e in entries],
        pagination=build_pagination(page, limit, total),
    )


@router.post(
    "/intrusion-events",
    response_model=IntrusionEventRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record an intrusion event",
)
async def create_intrusion_event_endpoint(
    payload: IntrusionEventCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> IntrusionEventRead:
    event = await db_manager.create_intrusion_event(db, payload)
    return IntrusionEventRead.model_validate(event)


@router.get(
    "/intrusion-events",
    response_model=Page[IntrusionEventRead],
    summary="List intrusion events",
)
async def list_intrusion_events_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    page: PageNumber = 1,
    limit: PageLimit = 50,
    event_type: IntrusionType | None = None,
    incident_status: IncidentStatus | None = None,
    min_severity: Annotated[int | None, Query(ge=1, le=10)] = None,
    source_ip: str | None = None,
) -> Page[IntrusionEventRead]:
    events, total = await db_manager.list_intrusion_events(
        db, page, limit, event_type, incident_status, min_severity, source_ip
    )
    return Page[IntrusionEventRead](
        data=[IntrusionEventRead.model_validate(e) for e in events],
        pagination=build_pagination(page, limit, total),
    )


@router.get(
    "/intrusion-events/summary",
    response_model=IntrusionSummary,
    summary="Intrusion activity over the last hours",
)
async def get_intrusion_summary_endpoint(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    hours: Annotated[int, Query(ge=1, le=24 * 30)] = 24,
) -> IntrusionSummary:
    return await db_manager.get_intrusion_summary(db, hours)


@router.get(
    "/intrusion-events/{event_id}",
    response_model=IntrusionEventRead,
    summary="Get intrusion event by ID",
)
async def get_intrusion_event_endpoint(
    event_id: EventId,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> IntrusionEventRead:
    event = await db_manager.get_intrusion_event(db, event_id)
    return IntrusionEventRead.model_validate(event)


@router.patch(
    "/intrusion-events/{event_id}",
    response_model=IntrusionEventRead,
    summary="Update an intrusion event's incident status",
)
async def update_intrusion_event_endpoint(
    event_id: EventId,
    payload: IntrusionEventUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> IntrusionEventRead:
    event = await db_manager.update_intrusion_event(db, event_id, payload, admin_id=admin.id)
    return IntrusionEventRead.model_validate(event)
