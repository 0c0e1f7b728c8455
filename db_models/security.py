# db_models/security.py
"""
Security observability records. Neither table takes part in the verification
workflow's transactions; both are written alongside it and queried by admins.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import String, Integer, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base, UTCDateTime, new_uuid, utcnow


class AuditLog(Base):
    """Append-only record of an admin action."""

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(80), nullable=True, index=True)

    admin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        index=True,
    )


class IntrusionEvent(Base):
    __tablename__ = "intrusion_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    event_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    source_ip: Mapped[str] = mapped_column(String(45), nullable=False, index=True)
    target_resource: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # 1 (informational) .. 10 (critical)
    severity_level: Mapped[int] = mapped_column(Integer, nullable=False)
    detection_method: Mapped[str] = mapped_column(String(100), nullable=False)

    # detected | investigating | contained | resolved | false_positive
    incident_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="detected",
        index=True,
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    first_detected_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        index=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
