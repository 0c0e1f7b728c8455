# api/preparation/models.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


DatabaseStatus = Literal["preparing", "ready", "submitted", "processed"]


class PreparationStarted(BaseModel):
    message: str
    job_id: str
    status: str


class PreparationJobRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cycle_id: str
    status: str
    databases_created: int
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class DatabaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cycle_id: str
    business_id: str
    status: str
    transaction_count: int
    verified_count: int
    version: int
    deadline_at: datetime
    submitted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
