"""
app/connectors/import_store_client.py

HTTP client for a remote import store exposing the /import API.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from app.config import ImportStoreClientSettings, get_import_store_client_settings
from app.domain.case_import import ChunkResult, ChunkRowError, JobStatusSnapshot, ResumeInfo
from app.schemas.case_import import (
    BatchImportResponse,
    ImportErrorReportResponse,
    ImportJobStatusResponse,
    ResumeJobResponse,
)
from app.services.batch_submission import ChunkTransportError
from db.repositories.errors import ImportJobNotFoundError, InvalidJobStateError

logger = logging.getLogger(__name__)


class ImportStoreRequestError(RuntimeError):
    """
    Raised when the import store cannot serve a request.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transport_failure(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class HTTPImportStore:
    """
    Import store reached over HTTP. Requests are never retried here.
    """

    def __init__(
        self,
        *,
        user_id: str,
        settings: ImportStoreClientSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        resolved = settings or get_import_store_client_settings()
        self._base_url = resolved.base_url.rstrip("/")
        self._timeout_seconds = resolved.timeout_seconds
        self._session = session or requests.Session()
        self._headers = {"X-User-Id": user_id}

    def create_import_job(self, file_name: str, total_rows: int, user_id: str) -> JobStatusSnapshot:
        payload = self._request_json(
            method="POST",
            path="/import/start",
            json_body={"file_name": file_name, "total_rows": total_rows},
            headers={"X-User-Id": user_id},
        )
        return ImportJobStatusResponse.model_validate(payload).to_snapshot()

    def submit_chunk(self, job_id: str, rows: Sequence[dict[str, Any]], start_index: int) -> ChunkResult:
        try:
            payload = self._request_json(
                method="POST",
                path=f"/import/{job_id}/batch",
                json_body={"rows": list(rows), "start_index": start_index},
            )
        except ImportStoreRequestError as exc:
            if not exc.is_transport_failure:
                raise
            raise ChunkTransportError(str(exc), job_id=job_id, start_index=start_index) from exc

        response = BatchImportResponse.model_validate(payload)
        return ChunkResult(
            success_count=response.success_count,
            failed_count=response.failed_count,
            errors=[ChunkRowError(**error.model_dump()) for error in response.errors],
        )

    def get_job_status(self, job_id: str) -> JobStatusSnapshot:
        payload = self._request_json(method="GET", path=f"/import/{job_id}/status")
        return ImportJobStatusResponse.model_validate(payload).to_snapshot()

    def pause_job(self, job_id: str) -> JobStatusSnapshot:
        payload = self._request_json(method="POST", path=f"/import/{job_id}/pause")
        return ImportJobStatusResponse.model_validate(payload).to_snapshot()

    def resume_job(self, job_id: str) -> ResumeInfo:
        payload = self._request_json(method="POST", path=f"/import/{job_id}/resume")
        response = ResumeJobResponse.model_validate(payload)
        return ResumeInfo(
            job_id=response.job_id,
            last_processed_index=response.last_processed_index,
            remaining_rows=response.remaining_rows,
        )

    def get_error_report(self, job_id: str) -> list[dict[str, Any]]:
        payload = self._request_json(method="GET", path=f"/import/{job_id}/errors")
        report = ImportErrorReportResponse.model_validate(payload)
        return [error.model_dump() for error in report.errors]

    def _request_json(
        self,
        *,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute one request and return parsed JSON, mapping failures to store errors.
        """

        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method=method,
                url=url,
                json=json_body,
                headers={**self._headers, **(headers or {})},
                timeout=self._timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.error("Import store unreachable method=%s url=%s error=%s", method, url, exc)
            raise ImportStoreRequestError(f"Import store unreachable: {exc}") from exc

        if response.status_code == 404:
            raise ImportJobNotFoundError(_detail_message(response), job_id=_job_id_from_path(path))
        if response.status_code in (400, 409):
            raise InvalidJobStateError(_detail_message(response), job_id=_job_id_from_path(path))
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            logger.error(
                "Import store request failed method=%s status=%s url=%s",
                method,
                response.status_code,
                url,
            )
            raise ImportStoreRequestError(
                f"Import store returned HTTP {response.status_code}: {_detail_message(response)}",
                status_code=response.status_code,
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ImportStoreRequestError(
                "Import store response was not valid JSON.",
                status_code=response.status_code,
            ) from exc


def _detail_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or ""
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    if detail is not None:
        return str(detail)
    return str(body)


def _job_id_from_path(path: str) -> str | None:
    parts = [part for part in path.split("/") if part]
    if len(parts) >= 3 and parts[0] == "import":
        return parts[1]
    return None
