# db_models/verification_cycle.py
from datetime import date, datetime

from sqlalchemy import String, Date, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base, UTCDateTime, new_uuid, utcnow


class VerificationCycle(Base):
    """
    One week of verification work. Cycles are never deleted; they end as
    `completed` or `expired`.
    """

    __tablename__ = "verification_cycles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    # Always a Monday
    cycle_week: Mapped[date] = mapped_column(
        Date,
        unique=True,
        index=True,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="preparing",
        server_default="preparing",
        index=True,
    )

    created_by: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=True,
    )

    total_businesses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prepared_businesses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    databases: Mapped[list["VerificationDatabase"]] = relationship(
        "VerificationDatabase",
        back_populates="cycle",
        cascade="all, delete-orphan",
    )
