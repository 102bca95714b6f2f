from datetime import datetime
from typing import Optional, Any

from sqlalchemy import String, Integer, DateTime, Index, JSON, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from duejobs.db.session import Base

# JSONB on Postgres, plain JSON everywhere else (sqlite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")

class ScheduledJob(Base):
    __tablename__ = "scheduled_jobs"

    # Natural key: bucket of the due time + time-ordered unique suffix
    partition_key: Mapped[str] = mapped_column(String, primary_key=True)
    sort_key: Mapped[str] = mapped_column(String, primary_key=True)

    due_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    routing_key: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)

    # Engine-managed lease; both set or both null
    claim_owner: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    claim_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"))

class DeadLetter(Base):
    __tablename__ = "dead_letters"

    # A key can be re-created and dead-lettered again, so rows get their own id
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partition_key: Mapped[str] = mapped_column(String, nullable=False)
    sort_key: Mapped[str] = mapped_column(String, nullable=False)

    due_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    routing_key: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)

    reason: Mapped[str] = mapped_column(String, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    dead_lettered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_dead_letters_dead_lettered_at", "dead_lettered_at"),
        Index("ix_dead_letters_key", "partition_key", "sort_key"),
    )
