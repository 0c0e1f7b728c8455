# api/payments/models.py
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


InvoiceStatus = Literal["pending", "disputed", "overdue", "paid", "cancelled"]


class InvoiceGenerationResult(BaseModel):
    invoices_created: int
    total_amount: float
    businesses_invoiced: int


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cycle_id: str
    business_id: str
    status: str
    total_rewards: float
    admin_fee: float
    total_amount: float
    transaction_count: int
    due_date: date
    payment_date: date | None = None
    notes: str | None = None
    feedback_database_delivered: bool
    delivered_at: datetime | None = None
    notification_count: int
    last_notified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PaymentStatusUpdate(BaseModel):
    status: InvoiceStatus
    payment_date: date | None = None
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def paid_requires_payment_date(self) -> "PaymentStatusUpdate":
        if self.status == "paid" and self.payment_date is None:
            raise ValueError("payment_date is required when status is paid")
        return self


class SideEffectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invoice_id: str
    kind: str
    status: str
    attempts: int
    last_error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class PaymentStatusResult(BaseModel):
    invoice: InvoiceRead
    side_effects: list[SideEffectRead]
    cycle_completed: bool


class SideEffectRetryResult(BaseModel):
    processed: int
    completed: int
    failed: int


class NotificationResult(BaseModel):
    invoice_id: str
    sent: bool
    notification_count: int


class OverdueResult(BaseModel):
    updated: int


class RewardBatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cycle_id: str
    invoice_id: str
    business_id: str
    payment_batch_id: str | None = None
    phone_number: str
    total_reward_amount: float
    transaction_count: int
    payout_status: str
    payout_reference: str | None = None
    created_at: datetime


class PaymentStatistics(BaseModel):
    cycle_id: str
    invoice_count: int
    invoices_by_status: dict[str, int]
    total_invoiced: float
    total_paid: float
    total_outstanding: float
    total_admin_fees: float
    reward_batch_count: int
    reward_batch_amount: float
