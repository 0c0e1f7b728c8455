# api/submissions/models.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str | None = None
    phone_number: str
    amount: float
    reward_amount: float
    transaction_date: datetime
    verification_status: str


class RecordDecision(BaseModel):
    record_id: str
    verification_status: Literal["verified", "fake"]


class SubmissionRequest(BaseModel):
    """Decisions for the records of one database. Records left out stay `pending`."""
    records: list[RecordDecision] = Field(..., min_length=1)
