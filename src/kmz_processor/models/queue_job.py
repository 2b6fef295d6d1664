"""QueueJob model: durable processing queue entry."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from kmz_processor.models.base import Base, IntegerIDMixin


class QueueJobStatus(enum.StrEnum):
    """Lifecycle of a queue entry."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueJob(Base, IntegerIDMixin):
    """A unit of queued work with its retry budget and lease state."""

    __tablename__ = "queue_jobs"

    queue_name: Mapped[str] = mapped_column(String(100), nullable=False)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False, default="process", server_default="process")
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QueueJobStatus.WAITING, server_default="waiting"
    )

    # Retry policy
    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    backoff_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="exponential", server_default="exponential"
    )
    backoff_delay_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=2000, server_default="2000")

    # Lease
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_queue_jobs_claim", "queue_name", "status", "available_at"),)

    @property
    def kmz_id(self) -> int | None:
        value = (self.payload or {}).get("kmz_id")
        return int(value) if value is not None else None

    @property
    def is_exhausted(self) -> bool:
        """True once the entry has failed terminally and will not be retried."""
        return self.status == QueueJobStatus.FAILED
