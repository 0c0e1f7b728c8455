# api/security/models.py
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress


IntrusionType = Literal[
    "brute_force",
    "sql_injection",
    "xss_attempt",
    "ddos_attack",
    "unauthorized_access",
    "malware_detection",
    "privilege_escalation",
    "data_exfiltration",
    "suspicious_activity",
]

IncidentStatus = Literal["detected", "investigating", "contained", "resolved", "false_positive"]

CLOSED_INCIDENT_STATUSES = ("resolved", "false_positive")


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    entity_type: str
    entity_id: str | None = None
    admin_id: int | None = None
    details: dict[str, Any]
    created_at: datetime


class IntrusionEventCreate(BaseModel):
    event_type: IntrusionType
    source_ip: IPvAnyAddress
    target_resource: str | None = Field(None, max_length=255)
    severity_level: int = Field(..., ge=1, le=10)
    detection_method: str = Field(..., min_length=1, max_length=100)


class IntrusionEventUpdate(BaseModel):
    incident_status: IncidentStatus | None = None
    resolution_notes: str | None = None


class IntrusionEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    source_ip: str
    target_resource: str | None = None
    severity_level: int
    detection_method: str
    incident_status: str
    resolution_notes: str | None = None
    first_detected_at: datetime
    resolved_at: datetime | None = None


class SourceIpCount(BaseModel):
    source_ip: str
    count: int


class IntrusionSummary(BaseModel):
    hours: int
    total_events: int
    by_event_type: dict[str, int]
    by_status: dict[str, int]
    critical_unresolved: int
    top_source_ips: list[SourceIpCount]
