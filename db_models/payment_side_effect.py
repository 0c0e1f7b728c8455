# db_models/payment_side_effect.py
from datetime import datetime

from sqlalchemy import String, Integer, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base, UTCDateTime, new_uuid, utcnow


class PaymentSideEffect(Base):
    """Outbox row for work that must follow an invoice being marked paid."""

    __tablename__ = "payment_side_effects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    invoice_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("payment_invoices.id"),
        nullable=False,
        index=True,
    )

    # deliver_feedback_database | create_reward_batches
    kind: Mapped[str] = mapped_column(String(40), nullable=False)

    # pending | completed | failed
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
    )

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
