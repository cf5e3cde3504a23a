"""
db/models/import_job.py

Ledger row tracking one chunked import from creation to completion.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, PortableJSON, TimestampMixin


class ImportJobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportJob(Base, TimestampMixin):
    __tablename__ = "import_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    file_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ImportJobStatus.PENDING,
        comment="pending, processing, paused, completed, failed",
    )
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_processed_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=-1,
        comment="Offset of the last row committed; -1 before the first chunk",
    )
    error_data: Mapped[list[dict[str, Any]]] = mapped_column(
        PortableJSON,
        nullable=False,
        default=list,
        comment="Row-level failures in recorded order",
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_import_jobs_status", "status"),
        Index("ix_import_jobs_user_id_created_at", "user_id", "created_at"),
    )
