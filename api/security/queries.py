# api/security/queries.py
"""
SQLAlchemy query builders for audit log and intrusion event lookups.
"""
from datetime import datetime

from sqlalchemy import select, func

from db_models.security import AuditLog, IntrusionEvent


def _filter_audit_logs(stmt, action: str | None, entity_type: str | None, entity_id: str | None):
    if action is not None:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type is not None:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    return stmt


def select_audit_logs(action, entity_type, entity_id, offset: int, limit: int):
    """Select a page of audit entries, newest first."""
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id)
    return _filter_audit_logs(stmt, action, entity_type, entity_id).offset(offset).limit(limit)


def count_audit_logs(action, entity_type, entity_id):
    return _filter_audit_logs(select(func.count(AuditLog.id)), action, entity_type, entity_id)


def _filter_events(
    stmt,
    event_type: str | None,
    incident_status: str | None,
    min_severity: int | None,
    source_ip: str | None,
):
    if event_type is not None:
        stmt = stmt.where(IntrusionEvent.event_type == event_type)
    if incident_status is not None:
        stmt = stmt.where(IntrusionEvent.incident_status == incident_status)
    if min_severity is not None:
        stmt = stmt.where(IntrusionEvent.severity_level >= min_severity)
    if source_ip is not None:
        stmt = stmt.where(IntrusionEvent.source_ip == source_ip)
    return stmt


def select_intrusion_events(event_type, incident_status, min_severity, source_ip, offset: int, limit: int):
    stmt = select(IntrusionEvent).order_by(
        IntrusionEvent.first_detected_at.desc(), IntrusionEvent.id
    )
    stmt = _filter_events(stmt, event_type, incident_status, min_severity, source_ip)
    return stmt.offset(offset).limit(limit)


def count_intrusion_events(event_type, incident_status, min_severity, source_ip):
    stmt = select(func.count(IntrusionEvent.id))
    return _filter_events(stmt, event_type, incident_status, min_severity, source_ip)


def select_events_since(since: datetime):
    return select(IntrusionEvent).where(IntrusionEvent.first_detected_at >= since)
