"""
db/models/case_record.py

Persisted case created by a committed import chunk.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class CaseRecordStatus:
    PENDING = "PENDING"


class CaseRecord(Base, TimestampMixin):
    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    case_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    applicant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dob: Mapped[date] = mapped_column(Date, nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=CaseRecordStatus.PENDING)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    import_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("import_jobs.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_cases_import_job_id", "import_job_id"),
        Index("ix_cases_category", "category"),
    )
