# db_models/payment_batch.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base, UTCDateTime, new_uuid, utcnow


class PaymentBatch(Base):
    """
    Payout run for a cycle's customer reward batches.

    `job_lock_key`/`lock_expires_at` form a lease: a worker owns the batch
    until it releases the key or the lease runs out.
    """

    __tablename__ = "payment_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    cycle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("verification_cycles.id"),
        index=True,
        nullable=False,
    )

    # pending | processing | completed | failed
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    reward_batch_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    job_lock_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lock_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
