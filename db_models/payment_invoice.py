# db_models/payment_invoice.py
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Date,
    Boolean,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base, UTCDateTime, new_uuid, utcnow


class PaymentInvoice(Base):
    """
    Invoice issued to a business for verified rewards plus the admin fee.

    References its cycle but has its own lifecycle; nothing cascades back.
    """

    __tablename__ = "payment_invoices"
    __table_args__ = (
        UniqueConstraint("cycle_id", "business_id", name="uq_payment_invoice_cycle_business"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    cycle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("verification_cycles.id"),
        nullable=False,
        index=True,
    )
    business_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("businesses.id"),
        nullable=False,
        index=True,
    )

    # pending | disputed | overdue | paid | cancelled
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
    )

    total_rewards: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    admin_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    feedback_database_delivered: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    notification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_notified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        onupdate=utcnow,
    )


class CustomerRewardBatch(Base):
    """All verified rewards owed to one phone number for one paid invoice."""

    __tablename__ = "customer_reward_batches"
    __table_args__ = (
        UniqueConstraint("invoice_id", "phone_number", name="uq_reward_batch_invoice_phone"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    cycle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("verification_cycles.id"),
        nullable=False,
        index=True,
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("payment_invoices.id"),
        nullable=False,
        index=True,
    )
    business_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("businesses.id"),
        nullable=False,
    )
    payment_batch_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("payment_batches.id"),
        nullable=True,
        index=True,
    )

    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    total_reward_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # pending | invalid_number | sent | failed
    payout_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
    )
    payout_reference: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )
