# core/audit.py
"""
Audit trail helpers.

`record_audit` only adds the row to the session; it is committed together
with the change it describes.
"""
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from db_models.security import AuditLog


class AuditAction:
    """Known audit action identifiers."""

    CYCLE_CREATED = "verification_cycle_created"
    CYCLE_STATUS_UPDATED = "verification_cycle_status_updated"
    PREPARATION_STARTED = "database_preparation_started"
    DATABASE_REGENERATED = "verification_database_regenerated"
    DATABASE_SUBMITTED = "verification_database_submitted"
    INVOICES_GENERATED = "payment_invoices_generated"
    PAYMENT_STATUS_UPDATED = "payment_status_updated"
    INVOICES_MARKED_OVERDUE = "payment_invoices_marked_overdue"
    PAYMENT_BATCH_CREATED = "payment_batch_created"
    PAYMENT_BATCH_PROCESSED = "payment_batch_processed"
    INTRUSION_EVENT_UPDATED = "intrusion_event_updated"


def record_audit(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    admin_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        admin_id=admin_id,
        details=details or {},
    )
    db.add(entry)
    return entry
