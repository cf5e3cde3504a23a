"""
Repository for import job ledger persistence and status lookup.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.import_job import ImportJob, ImportJobStatus


class ImportJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_job(
        self,
        *,
        file_name: str,
        total_rows: int,
        user_id: str,
    ) -> ImportJob:
        job = ImportJob(
            file_name=file_name,
            user_id=user_id,
            status=ImportJobStatus.PENDING,
            total_rows=total_rows,
            processed_rows=0,
            success_count=0,
            failed_count=0,
            last_processed_index=-1,
            error_data=[],
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_job(self, job_id: uuid.UUID, *, for_update: bool = False) -> ImportJob | None:
        if not for_update:
            return self._session.get(ImportJob, job_id)
        stmt = select(ImportJob).where(ImportJob.id == job_id).with_for_update()
        return self._session.scalars(stmt).first()

    def list_jobs_for_user(self, *, user_id: str, limit: int = 20) -> list[ImportJob]:
        stmt: Select[tuple[ImportJob]] = (
            select(ImportJob)
            .where(ImportJob.user_id == user_id)
            .order_by(ImportJob.created_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def set_status(self, job: ImportJob, status: str) -> ImportJob:
        job.status = status
        return job

    def record_chunk(
        self,
        job: ImportJob,
        *,
        start_index: int,
        row_count: int,
        success_count: int,
        failed_count: int,
        errors: Sequence[dict[str, Any]],
    ) -> ImportJob:
        """
        Fold one chunk's outcome into the job's running counters.
        """

        job.processed_rows += row_count
        job.success_count += success_count
        job.failed_count += failed_count
        job.last_processed_index = start_index + row_count - 1
        if errors:
            # Reassign so JSON column mutation is detected.
            job.error_data = [*(job.error_data or []), *errors]
        if job.processed_rows >= job.total_rows:
            job.status = ImportJobStatus.COMPLETED
            job.completed_at = utc_now()
        else:
            job.status = ImportJobStatus.PROCESSING
        return job
