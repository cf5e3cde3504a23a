"""
tests/test_case_import_api.py

HTTP tests for the /import router over in-memory SQLite.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.api.routers.case_import import router
from db.session import get_db

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture()
def client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    application = FastAPI()
    application.include_router(router)

    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    with TestClient(application) as test_client:
        yield test_client


def _start(client: TestClient, total_rows: int = 3) -> str:
    response = client.post("/import/start", json={"file_name": "cases.csv", "total_rows": total_rows}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()["job_id"]


def _row(case_id: str, **overrides: str) -> dict[str, str]:
    row = {
        "case_id": case_id,
        "applicant_name": "Jane Doe",
        "dob": "1985-06-15",
        "category": "PERMIT",
    }
    row.update(overrides)
    return row


def test_preview_maps_and_summarizes_upload(client: TestClient) -> None:
    content = (
        "Case ID,Applicant Name,Date of Birth,Category,Notes\n"
        "C-1,Ann,1990-01-01,TAX,first\n"
        "C-2,,1990-01-01,OTHER,second\n"
    )

    response = client.post(
        "/import/preview",
        files={"file": ("cases.csv", content.encode("utf-8"), "text/csv")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["headers"] == ["case_id", "applicant_name", "date_of_birth", "category", "notes"]
    assert [item["schema_field"] for item in body["mappings"]] == [
        "case_id",
        "applicant_name",
        "dob",
        "category",
        None,
    ]
    assert body["unmapped_required_fields"] == []
    assert (body["total_rows"], body["valid_rows"], body["invalid_rows"]) == (2, 1, 1)
    assert {issue["code"] for issue in body["issues"]} == {"required", "invalid_category"}


def test_preview_rejects_non_csv_and_headerless_files(client: TestClient) -> None:
    response = client.post("/import/preview", files={"file": ("cases.txt", b"x", "text/plain")})
    assert response.status_code == 400

    response = client.post("/import/preview", files={"file": ("cases.csv", b"", "text/csv")})
    assert response.status_code == 400


def test_start_requires_user_header(client: TestClient) -> None:
    response = client.post("/import/start", json={"file_name": "cases.csv", "total_rows": 1})
    assert response.status_code == 401


def test_batch_status_and_error_report_flow(client: TestClient) -> None:
    job_id = _start(client)

    response = client.post(
        f"/import/{job_id}/batch",
        json={"rows": [_row("C-1"), _row("C-1"), _row("C-3", category="OTHER")], "start_index": 0},
    )
    assert response.status_code == 200
    assert response.json() == {
        "success_count": 1,
        "failed_count": 2,
        "errors": [
            {"index": 1, "case_id": "C-1", "message": "Duplicate case ID", "code": "duplicate"},
            {"index": 2, "case_id": "C-3", "message": "Invalid category: OTHER", "code": "invalid"},
        ],
    }

    status_body = client.get(f"/import/{job_id}/status").json()
    assert status_body["status"] == "completed"
    assert status_body["progress_percent"] == 100
    assert status_body["remaining_rows"] == 0

    report = client.get(f"/import/{job_id}/errors").json()
    assert [error["index"] for error in report["errors"]] == [1, 2]

    csv_response = client.get(f"/import/{job_id}/errors.csv")
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert csv_response.text.splitlines()[0] == "Row Index,Identifier,Error"
    assert csv_response.text.splitlines()[1] == "1,C-1,Duplicate case ID"

    response = client.post(f"/import/{job_id}/batch", json={"rows": [_row("C-9")], "start_index": 3})
    assert response.status_code == 409


def test_pause_and_resume_endpoints(client: TestClient) -> None:
    job_id = _start(client, total_rows=4)
    client.post(f"/import/{job_id}/batch", json={"rows": [_row("C-1"), _row("C-2")], "start_index": 0})

    response = client.post(f"/import/{job_id}/pause")
    assert response.status_code == 200
    assert response.json()["status"] == "paused"

    response = client.post(f"/import/{job_id}/batch", json={"rows": [_row("C-3")], "start_index": 2})
    assert response.status_code == 409

    response = client.post(f"/import/{job_id}/resume")
    assert response.status_code == 200
    assert response.json() == {"job_id": job_id, "last_processed_index": 1, "remaining_rows": 2}

    response = client.post(f"/import/{job_id}/resume")
    assert response.status_code == 409


def test_unknown_job_returns_404(client: TestClient) -> None:
    assert client.get("/import/00000000-0000-0000-0000-000000000000/status").status_code == 404
    assert client.post("/import/not-a-job/pause").status_code == 404


def test_empty_batch_is_unprocessable(client: TestClient) -> None:
    job_id = _start(client)

    response = client.post(f"/import/{job_id}/batch", json={"rows": [], "start_index": 0})
    assert response.status_code == 422


def test_history_lists_callers_jobs(client: TestClient) -> None:
    _start(client)
    _start(client)
    client.post("/import/start", json={"file_name": "other.csv", "total_rows": 1}, headers={"X-User-Id": "user-2"})

    response = client.get("/import/history", headers=HEADERS)

    assert response.status_code == 200
    jobs = response.json()["jobs"]
    assert len(jobs) == 2
    assert {job["file_name"] for job in jobs} == {"cases.csv"}
