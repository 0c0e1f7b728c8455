# api/payment_batches/models.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PaymentBatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cycle_id: str
    status: str
    total_amount: float
    reward_batch_count: int
    job_lock_key: str | None = None
    lock_expires_at: datetime | None = None
    created_at: datetime
    processed_at: datetime | None = None


class PaymentBatchProcessResult(BaseModel):
    batch: PaymentBatchRead
    sent: int
    failed: int
