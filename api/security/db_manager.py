# api/security/db_manager.py
"""
Business logic for the audit trail and intrusion event records.
"""
from collections import Counter
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.audit import AuditAction, record_audit
from core.errors import NotFoundError
from core.params import offset_for
from db_base import utcnow
from db_models.security import AuditLog, IntrusionEvent
from .models import (
    CLOSED_INCIDENT_STATUSES,
    IntrusionEventCreate,
    IntrusionEventUpdate,
    IntrusionSummary,
    SourceIpCount,
)
from . import queries


logger = structlog.get_logger(__name__)

CRITICAL_SEVERITY = 8
TOP_SOURCE_IPS = 10


async def list_audit_logs(
    db: AsyncSession,
    page: int,
    limit: int,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> tuple[list[AuditLog], int]:
    total = (await db.execute(queries.count_audit_logs(action, entity_type, entity_id))).scalar() or 0
    result = await db.execute(
        queries.select_audit_logs(action, entity_type, entity_id, offset_for(page, limit), limit)
    )
    return list(result.scalars().all()), total


async def get_intrusion_event(db: AsyncSession, event_id: str) -> IntrusionEvent:
    event = await db.get(IntrusionEvent, event_id)
    if event is None:
        raise NotFoundError("Intrusion event not found", details={"event_id": event_id})
    return event


async def create_intrusion_event(db: AsyncSession, data: IntrusionEventCreate) -> IntrusionEvent:
    event = IntrusionEvent(
        event_type=data.event_type,
        source_ip=str(data.source_ip),
        target_resource=data.target_resource,
        severity_level=data.severity_level,
        detection_method=data.detection_method,
        incident_status="detected",
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)

    log = logger.warning if event.severity_level >= CRITICAL_SEVERITY else logger.info
    log(
        "Intrusion event recorded",
        event_id=event.id,
        event_type=event.event_type,
        source_ip=event.source_ip,
        severity=event.severity_level,
    )
    return event


async def list_intrusion_events(
    db: AsyncSession,
    page: int,
    limit: int,
    event_type: str | None = None,
    incident_status: str | None = None,
    min_severity: int | None = None,
    source_ip: str | None = None,
) -> tuple[list[IntrusionEvent], int]:
    filters = (event_type, incident_status, min_severity, source_ip)
    total = (await db.execute(queries.count_intrusion_events(*filters))).scalar() or 0
    result = await db.execute(queries.select_intrusion_events(*filters, offset_for(page, limit), limit))
    return list(result.scalars().all()), total


async def update_intrusion_event(
    db: AsyncSession,
    event_id: str,
    data: IntrusionEventUpdate,
    admin_id: int | None = None,
) -> IntrusionEvent:
    """
    Change an event's incident status or notes. Moving to `resolved` or
    `false_positive` stamps `resolved_at`; reopening clears it.

    Raises:
        NotFoundError: If event doesn't exist
    """
    event = await get_intrusion_event(db, event_id)
    changes = data.model_dump(exclude_unset=True)
    previous = event.incident_status

    if data.resolution_notes is not None:
        event.resolution_notes = data.resolution_notes
    if data.incident_status is not None and data.incident_status != previous:
        event.incident_status = data.incident_status
        if data.incident_status in CLOSED_INCIDENT_STATUSES:
            event.resolved_at = utcnow()
        else:
            event.resolved_at = None

    record_audit(
        db,
        action=AuditAction.INTRUSION_EVENT_UPDATED,
        entity_type="intrusion_event",
        entity_id=event.id,
        admin_id=admin_id,
        details={"from": previous, "changes": changes},
    )
    await db.commit()
    await db.refresh(event)
    return event


async def get_intrusion_summary(db: AsyncSession, hours: int) -> IntrusionSummary:
    since = utcnow() - timedelta(hours=hours)
    events = (await db.execute(queries.select_events_since(since))).scalars().all()

    sources = Counter(event.source_ip for event in events)
    return IntrusionSummary(
        hours=hours,
        total_events=len(events),
        by_event_type=dict(Counter(event.event_type for event in events)),
        by_status=dict(Counter(event.incident_status for event in events)),
        critical_unresolved=sum(
            1
            for event in events
            if event.severity_level >= CRITICAL_SEVERITY
            and event.incident_status not in CLOSED_INCIDENT_STATUSES
        ),
        top_source_ips=[
            SourceIpCount(source_ip=ip, count=count)
            for ip, count in sources.most_common(TOP_SOURCE_IPS)
        ],
    )
