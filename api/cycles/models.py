# api/cycles/models.py
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


CycleStatus = Literal[
    "preparing",
    "ready",
    "distributed",
    "collecting",
    "processing",
    "invoicing",
    "completed",
    "expired",
]


class CycleCreate(BaseModel):
    cycle_week: date = Field(..., description="Monday that starts the cycle week, e.g. '2025-09-29'")


class CycleStatusUpdate(BaseModel):
    status: CycleStatus


class CycleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cycle_week: date
    status: str
    created_by: int | None = None
    total_businesses: int
    prepared_businesses: int
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None
