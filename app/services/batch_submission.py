"""
app/services/batch_submission.py

Sequential, resumable chunk submission of validated rows to an import store.

    idle -> running -> (paused <-> running) -> completed | interrupted

One chunk is in flight at most. A pause request is honoured at the next
chunk boundary, after the in-flight chunk has been counted.
Bound rows are reserved in the row state machine until the job completes,
so they cannot be edited or revalidated between chunks.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from app.config import get_case_import_settings
from app.domain.case_import import (
    CaseRow,
    ChunkResult,
    ChunkRowError,
    JobStatusSnapshot,
    ResumeInfo,
    RowStatus,
)
from app.services.row_state import RowStateMachine
from db.repositories.errors import ImportJobError

logger = logging.getLogger(__name__)

TRANSPORT_ERROR_CODE = "transport"
REJECTED_ERROR_CODE = "rejected"
PROVISIONAL_ERROR_CODES = frozenset({TRANSPORT_ERROR_CODE, REJECTED_ERROR_CODE})


class ImportStore(Protocol):
    def create_import_job(self, file_name: str, total_rows: int, user_id: str) -> JobStatusSnapshot:
        ...

    def submit_chunk(self, job_id: str, rows: Sequence[dict[str, Any]], start_index: int) -> ChunkResult:
        ...

    def get_job_status(self, job_id: str) -> JobStatusSnapshot:
        ...

    def pause_job(self, job_id: str) -> JobStatusSnapshot:
        ...

    def resume_job(self, job_id: str) -> ResumeInfo:
        ...


class ChunkTransportError(RuntimeError):
    """
    Raised when a chunk's fate is unknown because the store could not be reached.
    """

    def __init__(self, message: str, *, job_id: str | None = None, start_index: int | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.start_index = start_index


class CoordinatorStateError(RuntimeError):
    """
    Raised when an operation is not allowed in the coordinator's current state.
    """


class CoordinatorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


@dataclass
class SubmissionProgress:
    """
    Cached view of the job, updated additively after every chunk.
    """

    job_id: str
    total_rows: int
    processed_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    last_processed_index: int = -1
    status: str = "pending"
    errors: list[ChunkRowError] = field(default_factory=list)

    @property
    def next_index(self) -> int:
        return self.last_processed_index + 1

    @property
    def progress_percent(self) -> int:
        if self.total_rows <= 0:
            return 0
        return round(self.processed_rows / self.total_rows * 100)

    @classmethod
    def from_snapshot(cls, snapshot: JobStatusSnapshot) -> SubmissionProgress:
        return cls(
            job_id=snapshot.job_id,
            total_rows=snapshot.total_rows,
            processed_rows=snapshot.processed_rows,
            success_count=snapshot.success_count,
            failed_count=snapshot.failed_count,
            last_processed_index=snapshot.last_processed_index,
            status=snapshot.status,
        )


class BatchSubmissionCoordinator:
    """
    Drives one import job from creation to completion, a chunk at a time.
    """

    def __init__(
        self,
        store: ImportStore,
        *,
        chunk_size: int | None = None,
        user_id: str = "anonymous",
    ) -> None:
        size = chunk_size if chunk_size is not None else get_case_import_settings().chunk_size
        if size < 1:
            raise ValueError("chunk_size must be >= 1.")
        self._store = store
        self._chunk_size = size
        self._user_id = user_id
        self._state = CoordinatorState.IDLE
        self._rows: list[CaseRow] = []
        self._row_states: RowStateMachine | None = None
        self._progress: SubmissionProgress | None = None
        self._pause_requested = threading.Event()
        self._lock = threading.Lock()
        self._in_flight = False

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def progress(self) -> SubmissionProgress:
        if self._progress is None:
            raise CoordinatorStateError("No import job has been started.")
        return self._progress

    @property
    def job_id(self) -> str | None:
        return self._progress.job_id if self._progress is not None else None

    @property
    def errors(self) -> list[ChunkRowError]:
        return list(self._progress.errors) if self._progress is not None else []

    def start(
        self,
        file_name: str,
        rows: Sequence[CaseRow],
        row_states: RowStateMachine,
    ) -> SubmissionProgress:
        """
        Create the job for ``rows`` (submission-ready, original order) and enter running.
        """

        if self._state is not CoordinatorState.IDLE:
            raise CoordinatorStateError(f"Cannot start from state {self._state.value}.")
        if not rows:
            raise ValueError("No rows to submit.")

        snapshot = self._store.create_import_job(file_name, len(rows), self._user_id)
        self._bind(rows, row_states, SubmissionProgress.from_snapshot(snapshot))
        self._pause_requested.clear()
        self._state = CoordinatorState.RUNNING
        logger.info(
            "Batch submission started job=%s file=%r rows=%s chunk_size=%s",
            snapshot.job_id,
            file_name,
            len(rows),
            self._chunk_size,
        )
        return self.progress

    def attach(
        self,
        job_id: str,
        rows: Sequence[CaseRow],
        row_states: RowStateMachine,
        *,
        resume: bool = False,
    ) -> SubmissionProgress:
        """
        Rebuild state for an existing job from the store's authoritative status.

        Processing continues from ``last_processed_index + 1``; earlier chunks
        are never sent again. With ``resume`` a paused job is resumed at once.
        """

        if self._state not in (CoordinatorState.IDLE, CoordinatorState.INTERRUPTED):
            raise CoordinatorStateError(f"Cannot attach from state {self._state.value}.")

        snapshot = self._store.get_job_status(job_id)
        if snapshot.total_rows != len(rows):
            logger.warning(
                "Attached row count differs from job total job=%s rows=%s total_rows=%s",
                job_id,
                len(rows),
                snapshot.total_rows,
            )
        self._bind(rows, row_states, SubmissionProgress.from_snapshot(snapshot))
        self._pause_requested.clear()
        self._state = _state_for_job_status(snapshot.status)
        self._release_if_completed()
        logger.info(
            "Batch submission attached job=%s status=%s next_index=%s",
            job_id,
            snapshot.status,
            self.progress.next_index,
        )
        if resume and self._state is CoordinatorState.PAUSED:
            self.resume()
        return self.progress

    def submit_next_chunk(self) -> ChunkResult | None:
        """
        Send exactly one chunk and fold its result in; None when nothing was sent.
        """

        if self._state is not CoordinatorState.RUNNING:
            raise CoordinatorStateError(f"Cannot submit from state {self._state.value}.")

        progress = self.progress
        if self._pause_requested.is_set():
            self._apply_pause()
            return None
        start_index = progress.next_index
        if start_index >= len(self._rows):
            self._mark_completed()
            return None

        chunk = self._rows[start_index : start_index + self._chunk_size]
        row_states = self._require_row_states()
        blocked = [row.row_id for row in chunk if not row_states.can_submit(row.row_id)]
        if blocked:
            raise CoordinatorStateError(f"Rows are not ready for submission: {', '.join(blocked)}.")

        with self._lock:
            self._in_flight = True
        try:
            for row in chunk:
                self._lock_for_submission(row.row_id)
            try:
                result = self._store.submit_chunk(
                    progress.job_id,
                    [row.to_submission() for row in chunk],
                    start_index,
                )
            except ChunkTransportError as exc:
                self._record_chunk_failure(chunk, start_index, exc, code=TRANSPORT_ERROR_CODE)
                raise
            except ImportJobError as exc:
                self._record_chunk_failure(chunk, start_index, exc, code=REJECTED_ERROR_CODE)
                raise
            self._record_result(chunk, start_index, result)
        finally:
            with self._lock:
                self._in_flight = False

        if progress.processed_rows >= progress.total_rows:
            self._mark_completed()
        elif self._pause_requested.is_set():
            self._apply_pause()
        return result

    def run(self) -> SubmissionProgress:
        """
        Submit chunks until the job completes, pauses or is interrupted.

        Transport failures end the loop; job-level store errors propagate.
        """

        while self._state is CoordinatorState.RUNNING:
            try:
                self.submit_next_chunk()
            except ChunkTransportError:
                break
        return self.progress

    def request_pause(self) -> None:
        """
        Ask the coordinator to pause; honoured at the next chunk boundary.
        """

        if self._state is not CoordinatorState.RUNNING:
            return
        self._pause_requested.set()
        with self._lock:
            at_boundary = not self._in_flight
        if at_boundary:
            self._apply_pause()

    def resume(self) -> ResumeInfo:
        if self._state is not CoordinatorState.PAUSED:
            raise CoordinatorStateError(f"Cannot resume from state {self._state.value}.")

        info = self._store.resume_job(self.progress.job_id)
        self._pause_requested.clear()
        self._state = CoordinatorState.RUNNING
        self.progress.status = "processing"
        logger.info(
            "Batch submission resumed job=%s next_index=%s remaining_rows=%s",
            info.job_id,
            info.last_processed_index + 1,
            info.remaining_rows,
        )
        return info

    def retry(self) -> SubmissionProgress:
        """
        Re-sync counters from the store after an interruption and continue.
        """

        if self._state is not CoordinatorState.INTERRUPTED:
            raise CoordinatorStateError(f"Cannot retry from state {self._state.value}.")

        progress = self.progress
        snapshot = self._store.get_job_status(progress.job_id)
        resynced = SubmissionProgress.from_snapshot(snapshot)
        resynced.errors = [error for error in progress.errors if error.code not in PROVISIONAL_ERROR_CODES]
        self._progress = resynced
        self._state = _state_for_job_status(snapshot.status)
        self._release_if_completed()
        logger.info(
            "Batch submission retry job=%s next_index=%s status=%s",
            snapshot.job_id,
            resynced.next_index,
            snapshot.status,
        )
        return self.run() if self._state is CoordinatorState.RUNNING else resynced

    def _bind(
        self,
        rows: Sequence[CaseRow],
        row_states: RowStateMachine,
        progress: SubmissionProgress,
    ) -> None:
        if self._row_states is not None:
            self._row_states.release(row.row_id for row in self._rows)
        self._rows = list(rows)
        self._row_states = row_states
        row_states.reserve(row.row_id for row in self._rows)
        self._progress = progress

    def _lock_for_submission(self, row_id: str) -> None:
        row_states = self._require_row_states()
        status = row_states.status_of(row_id)
        if status is RowStatus.SUBMITTING:
            return
        row_states.mark_submitting(row_id, retry=status is RowStatus.FAILED)

    def _record_result(self, chunk: Sequence[CaseRow], start_index: int, result: ChunkResult) -> None:
        row_states = self._require_row_states()
        failed_indexes = {error.index for error in result.errors}
        for offset, row in enumerate(chunk):
            if start_index + offset in failed_indexes:
                row_states.mark_failed(row.row_id)
            else:
                row_states.mark_success(row.row_id)

        progress = self.progress
        progress.processed_rows += len(chunk)
        progress.success_count += result.success_count
        progress.failed_count += result.failed_count
        progress.last_processed_index = start_index + len(chunk) - 1
        progress.errors.extend(result.errors)
        progress.status = "completed" if progress.processed_rows >= progress.total_rows else "processing"
        logger.info(
            "Chunk submitted job=%s start_index=%s rows=%s success=%s failed=%s progress=%s%%",
            progress.job_id,
            start_index,
            len(chunk),
            result.success_count,
            result.failed_count,
            progress.progress_percent,
        )

    def _record_chunk_failure(
        self,
        chunk: Sequence[CaseRow],
        start_index: int,
        exc: Exception,
        *,
        code: str,
    ) -> None:
        """
        Count an unsent or unconfirmed chunk as failed and interrupt the job.

        Errors recorded here are provisional and dropped by ``retry()``.
        """

        row_states = self._require_row_states()
        progress = self.progress
        for offset, row in enumerate(chunk):
            row_states.mark_failed(row.row_id)
            progress.errors.append(
                ChunkRowError(
                    index=start_index + offset,
                    case_id=row.case_id.strip() or "unknown",
                    message=f"Chunk submission failed: {exc}",
                    code=code,
                )
            )
        progress.failed_count += len(chunk)
        self._state = CoordinatorState.INTERRUPTED
        logger.error(
            "Chunk submission failed job=%s start_index=%s rows=%s code=%s error=%s",
            progress.job_id,
            start_index,
            len(chunk),
            code,
            exc,
        )

    def _apply_pause(self) -> None:
        self._pause_requested.clear()
        if self._state is not CoordinatorState.RUNNING:
            return
        snapshot = self._store.pause_job(self.progress.job_id)
        self.progress.status = snapshot.status
        self._state = CoordinatorState.PAUSED
        logger.info(
            "Batch submission paused job=%s last_processed_index=%s",
            snapshot.job_id,
            self.progress.last_processed_index,
        )

    def _mark_completed(self) -> None:
        self._state = CoordinatorState.COMPLETED
        self._require_row_states().release(row.row_id for row in self._rows)
        self.progress.status = "completed"
        logger.info(
            "Batch submission completed job=%s success=%s failed=%s",
            self.progress.job_id,
            self.progress.success_count,
            self.progress.failed_count,
        )

    def _release_if_completed(self) -> None:
        if self._state is CoordinatorState.COMPLETED:
            self._require_row_states().release(row.row_id for row in self._rows)

    def _require_row_states(self) -> RowStateMachine:
        if self._row_states is None:
            raise CoordinatorStateError("No rows are bound to the coordinator.")
        return self._row_states


def _state_for_job_status(status: str) -> CoordinatorState:
    if status == "completed":
        return CoordinatorState.COMPLETED
    if status == "paused":
        return CoordinatorState.PAUSED
    if status == "failed":
        return CoordinatorState.INTERRUPTED
    return CoordinatorState.RUNNING
