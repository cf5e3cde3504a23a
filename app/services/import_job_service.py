"""
Import job ledger: creates jobs, commits chunks and tracks progress.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_case_import_settings
from app.domain.case_import import (
    DEFAULT_PRIORITY,
    Category,
    ChunkResult,
    ChunkRowError,
    JobStatusSnapshot,
    Priority,
    ResumeInfo,
    parse_enum,
)
from app.repositories.case_repository import CaseRepository
from app.validators.case_row_validator import parse_calendar_date
from db.models.import_job import ImportJob, ImportJobStatus
from db.repositories.errors import (
    ChunkPersistenceError,
    ImportJobNotFoundError,
    InvalidJobStateError,
)
from db.repositories.import_job_repository import ImportJobRepository

logger = logging.getLogger(__name__)

_REQUIRED_ROW_FIELDS = ("case_id", "applicant_name", "dob", "category")
_PAUSABLE_STATUSES = frozenset({ImportJobStatus.PENDING, ImportJobStatus.PROCESSING})


class ImportJobService:
    """
    Store-side job lifecycle. Each call runs in its own transaction on ``db``.
    """

    def create_import_job(
        self,
        *,
        db: Session,
        file_name: str,
        total_rows: int,
        user_id: str,
    ) -> JobStatusSnapshot:
        if total_rows < 1:
            raise ValueError("total_rows must be at least 1.")
        if not file_name.strip():
            raise ValueError("file_name must not be empty.")

        repository = ImportJobRepository(db)
        try:
            job = repository.create_job(
                file_name=file_name.strip(),
                total_rows=total_rows,
                user_id=user_id,
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info(
            "Import job created id=%s file=%r total_rows=%s user=%s",
            job.id,
            job.file_name,
            job.total_rows,
            user_id,
        )
        return _snapshot(job)

    def submit_chunk(
        self,
        *,
        db: Session,
        job_id: str | uuid.UUID,
        rows: Sequence[dict[str, Any]],
        start_index: int,
    ) -> ChunkResult:
        """
        Validate and persist one contiguous chunk, then advance the job's counters.

        Row-level problems are reported in the result and never abort the
        chunk; job-level problems raise.
        """

        if not rows:
            raise ValueError("A chunk must contain at least one row.")
        if start_index < 0:
            raise ValueError("start_index must be >= 0.")

        repository = ImportJobRepository(db)
        job = self._load_job(repository, job_id, for_update=True)
        if job.status in (ImportJobStatus.COMPLETED, ImportJobStatus.FAILED):
            db.rollback()
            raise InvalidJobStateError(
                "Import job already completed or failed.",
                job_id=str(job.id),
                status=job.status,
            )
        if job.status == ImportJobStatus.PAUSED:
            db.rollback()
            raise InvalidJobStateError(
                "Import job is paused; resume it before submitting more rows.",
                job_id=str(job.id),
                status=job.status,
            )
        if start_index != job.last_processed_index + 1:
            logger.warning(
                "Chunk start does not follow last processed row id=%s start_index=%s last_processed_index=%s",
                job.id,
                start_index,
                job.last_processed_index,
            )

        case_repository = CaseRepository(db)
        errors: list[ChunkRowError] = []
        accepted: list[dict[str, Any]] = []
        try:
            if job.status == ImportJobStatus.PENDING:
                repository.set_status(job, ImportJobStatus.PROCESSING)

            committed_ids = case_repository.existing_case_ids(
                str(row.get("case_id") or "").strip() for row in rows
            )
            seen_in_chunk: set[str] = set()
            for offset, row in enumerate(rows):
                row_index = start_index + offset
                payload, error = _prepare_case_payload(row, row_index=row_index)
                if error is None and payload is not None:
                    case_id = payload["case_id"]
                    if case_id in committed_ids or case_id in seen_in_chunk:
                        error = ChunkRowError(
                            index=row_index,
                            case_id=case_id,
                            message="Duplicate case ID",
                            code="duplicate",
                        )
                    else:
                        seen_in_chunk.add(case_id)
                        accepted.append(payload)
                if error is not None:
                    errors.append(error)

            case_repository.add_cases(accepted, import_job_id=job.id, user_id=job.user_id)
            repository.record_chunk(
                job,
                start_index=start_index,
                row_count=len(rows),
                success_count=len(accepted),
                failed_count=len(errors),
                errors=[error.to_dict() for error in errors],
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.exception("Chunk rejected by constraint id=%s start_index=%s", job_id, start_index)
            raise ChunkPersistenceError(
                "Chunk could not be committed because of a conflicting write.",
                job_id=str(job_id),
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Chunk persistence failed id=%s start_index=%s", job_id, start_index)
            raise ChunkPersistenceError("Chunk could not be committed.", job_id=str(job_id)) from exc

        logger.info(
            "Chunk committed id=%s start_index=%s rows=%s success=%s failed=%s processed=%s/%s status=%s",
            job.id,
            start_index,
            len(rows),
            len(accepted),
            len(errors),
            job.processed_rows,
            job.total_rows,
            job.status,
        )
        return ChunkResult(success_count=len(accepted), failed_count=len(errors), errors=errors)

    def get_job_status(self, *, db: Session, job_id: str | uuid.UUID) -> JobStatusSnapshot:
        repository = ImportJobRepository(db)
        return _snapshot(self._load_job(repository, job_id))

    def pause_job(self, *, db: Session, job_id: str | uuid.UUID) -> JobStatusSnapshot:
        repository = ImportJobRepository(db)
        job = self._load_job(repository, job_id, for_update=True)
        if job.status not in _PAUSABLE_STATUSES:
            db.rollback()
            raise InvalidJobStateError(
                f"Cannot pause an import job that is {job.status}.",
                job_id=str(job.id),
                status=job.status,
            )
        repository.set_status(job, ImportJobStatus.PAUSED)
        db.commit()
        logger.info("Import job paused id=%s last_processed_index=%s", job.id, job.last_processed_index)
        return _snapshot(job)

    def resume_job(self, *, db: Session, job_id: str | uuid.UUID) -> ResumeInfo:
        repository = ImportJobRepository(db)
        job = self._load_job(repository, job_id, for_update=True)
        if job.status != ImportJobStatus.PAUSED:
            db.rollback()
            raise InvalidJobStateError(
                "Job is not paused.",
                job_id=str(job.id),
                status=job.status,
            )
        repository.set_status(job, ImportJobStatus.PROCESSING)
        db.commit()
        info = ResumeInfo(
            job_id=str(job.id),
            last_processed_index=job.last_processed_index,
            remaining_rows=max(0, job.total_rows - job.processed_rows),
        )
        logger.info("Import job resumed id=%s remaining_rows=%s", job.id, info.remaining_rows)
        return info

    def list_job_history(
        self,
        *,
        db: Session,
        user_id: str,
        limit: int | None = None,
    ) -> list[JobStatusSnapshot]:
        effective_limit = limit if limit is not None else get_case_import_settings().history_limit
        repository = ImportJobRepository(db)
        return [_snapshot(job) for job in repository.list_jobs_for_user(user_id=user_id, limit=effective_limit)]

    def get_error_report(self, *, db: Session, job_id: str | uuid.UUID) -> list[dict[str, Any]]:
        repository = ImportJobRepository(db)
        job = self._load_job(repository, job_id)
        return list(job.error_data or [])

    def _load_job(
        self,
        repository: ImportJobRepository,
        job_id: str | uuid.UUID,
        *,
        for_update: bool = False,
    ) -> ImportJob:
        parsed_id = _parse_job_id(job_id)
        job = repository.get_job(parsed_id, for_update=for_update) if parsed_id is not None else None
        if job is None:
            raise ImportJobNotFoundError("Import job not found.", job_id=str(job_id))
        return job


class LocalImportStore:
    """
    In-process import store backed by the database, one session per call.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] | None = None,
        service: ImportJobService | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._service = service or get_import_job_service()

    def create_import_job(self, file_name: str, total_rows: int, user_id: str) -> JobStatusSnapshot:
        with self._session_factory() as db:
            return self._service.create_import_job(
                db=db,
                file_name=file_name,
                total_rows=total_rows,
                user_id=user_id,
            )

    def submit_chunk(self, job_id: str, rows: Sequence[dict[str, Any]], start_index: int) -> ChunkResult:
        with self._session_factory() as db:
            return self._service.submit_chunk(db=db, job_id=job_id, rows=rows, start_index=start_index)

    def get_job_status(self, job_id: str) -> JobStatusSnapshot:
        with self._session_factory() as db:
            return self._service.get_job_status(db=db, job_id=job_id)

    def pause_job(self, job_id: str) -> JobStatusSnapshot:
        with self._session_factory() as db:
            return self._service.pause_job(db=db, job_id=job_id)

    def resume_job(self, job_id: str) -> ResumeInfo:
        with self._session_factory() as db:
            return self._service.resume_job(db=db, job_id=job_id)

    def get_error_report(self, job_id: str) -> list[dict[str, Any]]:
        with self._session_factory() as db:
            return self._service.get_error_report(db=db, job_id=job_id)


def _prepare_case_payload(
    row: dict[str, Any],
    *,
    row_index: int,
) -> tuple[dict[str, Any] | None, ChunkRowError | None]:
    values = {key: str(row.get(key) or "").strip() for key in (*_REQUIRED_ROW_FIELDS, "email", "phone", "priority")}
    case_id = values["case_id"] or "unknown"

    if any(not values[key] for key in _REQUIRED_ROW_FIELDS):
        return None, ChunkRowError(index=row_index, case_id=case_id, message="Missing required fields")

    dob = parse_calendar_date(values["dob"])
    if dob is None:
        return None, ChunkRowError(index=row_index, case_id=case_id, message="Invalid date format for dob")

    category = parse_enum(Category, values["category"])
    if not category.ok:
        return None, ChunkRowError(
            index=row_index,
            case_id=case_id,
            message=f"Invalid category: {values['category']}",
        )

    priority = parse_enum(Priority, values["priority"])
    payload = {
        "case_id": values["case_id"],
        "applicant_name": values["applicant_name"],
        "dob": dob,
        "email": values["email"] or None,
        "phone": values["phone"] or None,
        "category": category.value.value,
        "priority": priority.value.value if priority.ok else DEFAULT_PRIORITY.value,
    }
    return payload, None


def _parse_job_id(job_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        return None


def _snapshot(job: ImportJob) -> JobStatusSnapshot:
    return JobStatusSnapshot(
        job_id=str(job.id),
        file_name=job.file_name,
        status=job.status,
        total_rows=job.total_rows,
        processed_rows=job.processed_rows,
        success_count=job.success_count,
        failed_count=job.failed_count,
        last_processed_index=job.last_processed_index,
        created_at=job.created_at,
    )


@lru_cache(maxsize=1)
def get_import_job_service() -> ImportJobService:
    return ImportJobService()
