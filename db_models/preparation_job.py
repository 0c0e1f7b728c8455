# db_models/preparation_job.py
from datetime import datetime

from sqlalchemy import String, Integer, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base, UTCDateTime, utcnow


class PreparationJob(Base):
    __tablename__ = "preparation_jobs"

    # prep_<cycle_id>_<unix_ms>
    id: Mapped[str] = mapped_column(String(80), primary_key=True)

    cycle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("verification_cycles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # pending | running | completed | failed
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
    )

    databases_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
