"""
tests/test_batch_submission.py

Pytest tests for BatchSubmissionCoordinator against an in-memory store.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from app.domain.case_import import (
    CaseRow,
    ChunkResult,
    ChunkRowError,
    JobStatusSnapshot,
    ResumeInfo,
    RowStatus,
    ValidationError,
)
from app.services.batch_submission import (
    BatchSubmissionCoordinator,
    ChunkTransportError,
    CoordinatorState,
    CoordinatorStateError,
)
from app.services.row_state import RowStateMachine
from db.repositories.errors import InvalidJobStateError


class FakeImportStore:
    """Ledger kept in memory; rejects case ids listed in ``reject``."""

    def __init__(self, *, reject: set[str] | None = None) -> None:
        self.reject = reject or set()
        self.calls: list[tuple[int, int]] = []
        self.fail_next_chunk = False
        self.commit_before_failing = False
        self.jobs: dict[str, dict[str, Any]] = {}
        self.pause_calls = 0

    def create_import_job(self, file_name: str, total_rows: int, user_id: str) -> JobStatusSnapshot:
        job_id = f"job-{len(self.jobs) + 1}"
        self.jobs[job_id] = {
            "file_name": file_name,
            "status": "pending",
            "total_rows": total_rows,
            "processed_rows": 0,
            "success_count": 0,
            "failed_count": 0,
            "last_processed_index": -1,
        }
        return self.get_job_status(job_id)

    def submit_chunk(self, job_id: str, rows: Sequence[dict[str, Any]], start_index: int) -> ChunkResult:
        self.calls.append((start_index, len(rows)))
        if self.fail_next_chunk:
            self.fail_next_chunk = False
            if self.commit_before_failing:
                self._commit(job_id, rows, start_index)
            raise ChunkTransportError("connection reset", job_id=job_id, start_index=start_index)
        return self._commit(job_id, rows, start_index)

    def _commit(self, job_id: str, rows: Sequence[dict[str, Any]], start_index: int) -> ChunkResult:
        job = self.jobs[job_id]
        if job["status"] == "paused":
            raise InvalidJobStateError("Import job is paused.", job_id=job_id, status="paused")
        errors = [
            ChunkRowError(index=start_index + offset, case_id=row["case_id"], message="Duplicate case ID", code="duplicate")
            for offset, row in enumerate(rows)
            if row["case_id"] in self.reject
        ]
        job["processed_rows"] += len(rows)
        job["success_count"] += len(rows) - len(errors)
        job["failed_count"] += len(errors)
        job["last_processed_index"] = start_index + len(rows) - 1
        job["status"] = "completed" if job["processed_rows"] >= job["total_rows"] else "processing"
        return ChunkResult(success_count=len(rows) - len(errors), failed_count=len(errors), errors=errors)

    def get_job_status(self, job_id: str) -> JobStatusSnapshot:
        job = self.jobs[job_id]
        return JobStatusSnapshot(job_id=job_id, **job)

    def pause_job(self, job_id: str) -> JobStatusSnapshot:
        self.pause_calls += 1
        self.jobs[job_id]["status"] = "paused"
        return self.get_job_status(job_id)

    def resume_job(self, job_id: str) -> ResumeInfo:
        job = self.jobs[job_id]
        job["status"] = "processing"
        return ResumeInfo(
            job_id=job_id,
            last_processed_index=job["last_processed_index"],
            remaining_rows=job["total_rows"] - job["processed_rows"],
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _rows(count: int) -> tuple[list[CaseRow], RowStateMachine]:
    rows = [
        CaseRow(
            row_id=f"row-{index}",
            case_id=f"C-{index}",
            applicant_name="Applicant",
            dob="1990-01-01",
            category="TAX",
        )
        for index in range(count)
    ]
    states = RowStateMachine()
    states.register(row.row_id for row in rows)
    states.apply_validation({})
    return rows, states


@pytest.fixture()
def store() -> FakeImportStore:
    return FakeImportStore()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_submits_contiguous_chunks_until_complete(store: FakeImportStore) -> None:
    rows, states = _rows(250)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=100, user_id="u-1")

    coordinator.start("cases.csv", rows, states)
    progress = coordinator.run()

    assert store.calls == [(0, 100), (100, 100), (200, 50)]
    assert coordinator.state is CoordinatorState.COMPLETED
    assert progress.processed_rows == 250
    assert progress.success_count == 250
    assert progress.last_processed_index == 249
    assert progress.progress_percent == 100
    assert states.counts()[RowStatus.SUCCESS] == 250


def test_rejected_rows_are_marked_failed(store: FakeImportStore) -> None:
    store.reject = {"C-3", "C-7"}
    rows, states = _rows(10)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=4)

    coordinator.start("cases.csv", rows, states)
    progress = coordinator.run()

    assert progress.failed_count == 2
    assert progress.success_count == 8
    assert [error.index for error in coordinator.errors] == [3, 7]
    assert states.status_of("row-3") is RowStatus.FAILED
    assert states.status_of("row-4") is RowStatus.SUCCESS


def test_pause_after_first_chunk_and_resume(store: FakeImportStore) -> None:
    rows, states = _rows(250)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=100)
    coordinator.start("cases.csv", rows, states)

    coordinator.submit_next_chunk()
    coordinator.request_pause()

    assert coordinator.state is CoordinatorState.PAUSED
    assert coordinator.progress.last_processed_index == 99
    assert store.jobs[coordinator.job_id]["status"] == "paused"
    with pytest.raises(CoordinatorStateError):
        coordinator.submit_next_chunk()

    info = coordinator.resume()

    assert info.remaining_rows == 150
    assert info.last_processed_index == 99
    coordinator.submit_next_chunk()
    assert store.calls[-1] == (100, 100)
    coordinator.run()
    assert coordinator.state is CoordinatorState.COMPLETED


def test_pause_requested_mid_chunk_waits_for_boundary(store: FakeImportStore) -> None:
    rows, states = _rows(30)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=10)
    original_submit = store.submit_chunk

    def submit_and_request_pause(job_id: str, chunk: Sequence[dict[str, Any]], start_index: int) -> ChunkResult:
        coordinator.request_pause()
        assert coordinator.state is CoordinatorState.RUNNING
        return original_submit(job_id, chunk, start_index)

    store.submit_chunk = submit_and_request_pause  # type: ignore[method-assign]
    coordinator.start("cases.csv", rows, states)
    coordinator.run()

    assert coordinator.state is CoordinatorState.PAUSED
    assert coordinator.progress.processed_rows == 10
    assert store.pause_calls == 1


def test_transport_failure_interrupts_and_retry_continues(store: FakeImportStore) -> None:
    rows, states = _rows(30)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=10)
    coordinator.start("cases.csv", rows, states)
    coordinator.submit_next_chunk()

    store.fail_next_chunk = True
    progress = coordinator.run()

    assert coordinator.state is CoordinatorState.INTERRUPTED
    assert progress.failed_count == 10
    assert progress.last_processed_index == 9
    assert states.status_of("row-10") is RowStatus.FAILED
    assert {error.code for error in coordinator.errors} == {"transport"}

    progress = coordinator.retry()

    assert coordinator.state is CoordinatorState.COMPLETED
    assert store.calls == [(0, 10), (10, 10), (10, 10), (20, 10)]
    assert progress.failed_count == 0
    assert progress.success_count == 30
    assert coordinator.errors == []
    assert states.status_of("row-10") is RowStatus.SUCCESS


def test_retry_does_not_resend_chunk_the_store_committed(store: FakeImportStore) -> None:
    rows, states = _rows(20)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=10)
    coordinator.start("cases.csv", rows, states)

    store.fail_next_chunk = True
    store.commit_before_failing = True
    coordinator.run()
    coordinator.retry()

    assert store.calls == [(0, 10), (10, 10)]
    assert coordinator.progress.processed_rows == 20


def test_attach_continues_after_last_processed_index(store: FakeImportStore) -> None:
    rows, states = _rows(250)
    first = BatchSubmissionCoordinator(store, chunk_size=100)
    first.start("cases.csv", rows, states)
    first.submit_next_chunk()
    job_id = first.job_id

    fresh_rows, fresh_states = _rows(250)
    second = BatchSubmissionCoordinator(store, chunk_size=100)
    progress = second.attach(job_id, fresh_rows, fresh_states)

    assert progress.next_index == 100
    assert second.state is CoordinatorState.RUNNING
    second.run()
    assert store.calls == [(0, 100), (100, 100), (200, 50)]
    assert second.state is CoordinatorState.COMPLETED


def test_attach_to_paused_job_waits_for_resume(store: FakeImportStore) -> None:
    rows, states = _rows(20)
    first = BatchSubmissionCoordinator(store, chunk_size=10)
    first.start("cases.csv", rows, states)
    first.submit_next_chunk()
    first.request_pause()

    second = BatchSubmissionCoordinator(store, chunk_size=10)
    second.attach(first.job_id, *_rows(20))

    assert second.state is CoordinatorState.PAUSED
    second.resume()
    second.run()
    assert second.progress.processed_rows == 20


def test_empty_row_set_is_rejected(store: FakeImportStore) -> None:
    coordinator = BatchSubmissionCoordinator(store)

    with pytest.raises(ValueError):
        coordinator.start("cases.csv", [], RowStateMachine())
    assert store.jobs == {}
    assert coordinator.state is CoordinatorState.IDLE


def test_attach_with_resume_continues_paused_job(store: FakeImportStore) -> None:
    rows, states = _rows(20)
    first = BatchSubmissionCoordinator(store, chunk_size=10)
    first.start("cases.csv", rows, states)
    first.submit_next_chunk()
    first.request_pause()

    second = BatchSubmissionCoordinator(store, chunk_size=10)
    second.attach(first.job_id, *_rows(20), resume=True)

    assert second.state is CoordinatorState.RUNNING
    assert store.jobs[first.job_id]["status"] == "processing"
    second.run()
    assert second.state is CoordinatorState.COMPLETED


def test_rejected_chunk_interrupts_and_leaves_no_row_submitting(store: FakeImportStore) -> None:
    rows, states = _rows(30)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=10)
    coordinator.start("cases.csv", rows, states)
    coordinator.submit_next_chunk()
    store.pause_job(coordinator.job_id)

    with pytest.raises(InvalidJobStateError):
        coordinator.run()

    assert coordinator.state is CoordinatorState.INTERRUPTED
    assert states.rows_in(RowStatus.SUBMITTING) == []
    assert states.status_of("row-10") is RowStatus.FAILED
    assert {error.code for error in coordinator.errors} == {"rejected"}

    coordinator.retry()

    assert coordinator.state is CoordinatorState.PAUSED
    assert coordinator.errors == []
    coordinator.resume()
    progress = coordinator.run()

    assert coordinator.state is CoordinatorState.COMPLETED
    assert store.calls == [(0, 10), (10, 10), (10, 10), (20, 10)]
    assert progress.success_count == 30
    assert states.status_of("row-10") is RowStatus.SUCCESS


def test_bound_rows_are_not_revalidated_while_paused(store: FakeImportStore) -> None:
    rows, states = _rows(30)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=10)
    coordinator.start("cases.csv", rows, states)
    coordinator.submit_next_chunk()
    coordinator.request_pause()

    rows[15].category = "BOGUS"
    states.apply_validation({"row-15": [ValidationError(field="category", message="bad", code="invalid_category")]})

    assert states.status_of("row-15") is RowStatus.VALID
    assert states.is_locked("row-15")

    coordinator.resume()
    coordinator.run()

    assert coordinator.state is CoordinatorState.COMPLETED
    assert store.calls == [(0, 10), (10, 10), (20, 10)]
    assert states.rows_in(RowStatus.SUBMITTING) == []


def test_unsubmittable_row_blocks_chunk_before_any_row_moves(store: FakeImportStore) -> None:
    rows, states = _rows(20)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=10)
    coordinator.start("cases.csv", rows, states)
    coordinator.submit_next_chunk()

    states.release()
    states.apply_validation({"row-15": [ValidationError(field="category", message="bad", code="invalid_category")]})

    with pytest.raises(CoordinatorStateError, match="row-15"):
        coordinator.submit_next_chunk()

    assert store.calls == [(0, 10)]
    assert states.status_of("row-10") is RowStatus.VALID
    assert states.rows_in(RowStatus.SUBMITTING) == []
