# db_models/verification_database.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base, UTCDateTime, new_uuid, utcnow


class VerificationDatabase(Base):
    """
    Per-business snapshot of the transactions a business must confirm during a
    cycle. Owned by its cycle; read-only once submitted.
    """

    __tablename__ = "verification_databases"
    __table_args__ = (
        UniqueConstraint("cycle_id", "business_id", name="uq_verification_database_cycle_business"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    cycle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("verification_cycles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    business_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("businesses.id"),
        nullable=False,
        index=True,
    )

    # preparing | ready | submitted | processed
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="preparing",
    )

    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    verified_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Bumped on every regeneration
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    deadline_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

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

    cycle: Mapped["VerificationCycle"] = relationship(
        "VerificationCycle",
        back_populates="databases",
    )
    records: Mapped[list["VerificationRecord"]] = relationship(
        "VerificationRecord",
        back_populates="database",
        cascade="all, delete-orphan",
        order_by="VerificationRecord.transaction_date",
    )


class VerificationRecord(Base):
    __tablename__ = "verification_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    database_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("verification_databases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("transactions.id"),
        nullable=True,
    )

    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # pending | verified | fake
    verification_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
    )

    database: Mapped["VerificationDatabase"] = relationship(
        "VerificationDatabase",
        back_populates="records",
    )
