"""KmzFile model: one uploaded KMZ archive and its processing status."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from kmz_processor.models.base import Base, IntegerIDMixin


class KmzFileStatus(enum.StrEnum):
    """Processing status of an uploaded archive."""

    QUEUED = "queued"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class KmzFile(Base, IntegerIDMixin):
    """Uploaded KMZ archive tracked through the processing pipeline."""

    __tablename__ = "kmz_files"

    filename: Mapped[str] = mapped_column(String(512), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=KmzFileStatus.QUEUED, server_default="queued", index=True
    )
    feature_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # "metadata" is reserved on declarative classes
    file_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)

    thumbnail_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    processed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
