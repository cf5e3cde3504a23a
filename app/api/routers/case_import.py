"""
app/api/routers/case_import.py

Case import HTTP endpoints: preview, job lifecycle and error reports.
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_csv_upload, get_current_user_id
from app.schemas.case_import import (
    BatchImportRequest,
    BatchImportResponse,
    ChunkRowErrorResponse,
    ColumnMappingResponse,
    CreateImportJobRequest,
    FieldErrorCountResponse,
    ImportErrorReportResponse,
    ImportHistoryResponse,
    ImportJobStatusResponse,
    ImportPreviewResponse,
    ResumeJobResponse,
    RowIssueResponse,
)
from app.services.csv_reader import CSVHeaderValidationError
from app.services.error_report import render_error_report_csv
from app.services.import_job_service import ImportJobService, get_import_job_service
from app.services.import_session import ImportSession
from db.repositories.errors import (
    ChunkPersistenceError,
    ImportJobError,
    ImportJobNotFoundError,
    InvalidJobStateError,
)
from db.session import get_db

router = APIRouter(prefix="/import", tags=["case-import"])

PREVIEW_ISSUE_LIMIT = 200


def _raise_http_error(exc: ImportJobError) -> NoReturn:
    if isinstance(exc, ImportJobNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, InvalidJobStateError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ChunkPersistenceError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=status_code, detail=exc.to_dict()) from exc


@router.post("/preview", response_model=ImportPreviewResponse)
def preview_import(
    file: UploadFile = Depends(get_csv_upload),
) -> ImportPreviewResponse:
    """
    Parse an upload, propose column mappings and summarize validation.
    """

    try:
        content = file.file.read()
        session = ImportSession.from_csv(file_name=file.filename or "upload.csv", content=content)
    except CSVHeaderValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    finally:
        file.file.close()

    session.apply_mapping(force=True)
    errors = session.validate()
    summary = session.summary()

    issues: list[RowIssueResponse] = []
    for row_id, row_errors in errors.items():
        issues.extend(
            RowIssueResponse(
                row_id=row_id,
                field=error.field,
                code=error.code,
                message=error.message,
                value=error.value,
                suggestion=error.suggestion,
                blocking=error.blocking,
            )
            for error in row_errors
        )
        if len(issues) >= PREVIEW_ISSUE_LIMIT:
            break

    return ImportPreviewResponse(
        file_name=session.file_name,
        headers=list(session.headers),
        mappings=[
            ColumnMappingResponse(
                source_column=mapping.source_column,
                schema_field=mapping.schema_field,
                confidence=mapping.confidence,
                confidence_level=mapping.confidence_level,
                is_auto_assigned=mapping.is_auto_assigned,
            )
            for mapping in session.mappings
        ],
        unmapped_required_fields=session.unmapped_required_fields(),
        total_rows=summary.total_rows,
        valid_rows=summary.valid_rows,
        invalid_rows=summary.invalid_rows,
        top_errors=[FieldErrorCountResponse(field=field, count=count) for field, count in summary.top_errors],
        issues=issues[:PREVIEW_ISSUE_LIMIT],
    )


@router.post(
    "/start",
    status_code=status.HTTP_201_CREATED,
    response_model=ImportJobStatusResponse,
)
def start_import(
    payload: CreateImportJobRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobStatusResponse:
    try:
        snapshot = service.create_import_job(
            db=db,
            file_name=payload.file_name,
            total_rows=payload.total_rows,
            user_id=user_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ImportJobStatusResponse.from_snapshot(snapshot)


@router.get("/history", response_model=ImportHistoryResponse)
def import_history(
    limit: int | None = Query(default=None, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportHistoryResponse:
    snapshots = service.list_job_history(db=db, user_id=user_id, limit=limit)
    return ImportHistoryResponse(jobs=[ImportJobStatusResponse.from_snapshot(item) for item in snapshots])


@router.post("/{job_id}/batch", response_model=BatchImportResponse)
def submit_batch(
    job_id: str,
    payload: BatchImportRequest,
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> BatchImportResponse:
    try:
        result = service.submit_chunk(
            db=db,
            job_id=job_id,
            rows=[row.model_dump() for row in payload.rows],
            start_index=payload.start_index,
        )
    except ImportJobError as exc:
        _raise_http_error(exc)
    return BatchImportResponse.from_result(result)


@router.get("/{job_id}/status", response_model=ImportJobStatusResponse)
def get_import_status(
    job_id: str,
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobStatusResponse:
    try:
        snapshot = service.get_job_status(db=db, job_id=job_id)
    except ImportJobError as exc:
        _raise_http_error(exc)
    return ImportJobStatusResponse.from_snapshot(snapshot)


@router.post("/{job_id}/pause", response_model=ImportJobStatusResponse)
def pause_import(
    job_id: str,
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportJobStatusResponse:
    try:
        snapshot = service.pause_job(db=db, job_id=job_id)
    except ImportJobError as exc:
        _raise_http_error(exc)
    return ImportJobStatusResponse.from_snapshot(snapshot)


@router.post("/{job_id}/resume", response_model=ResumeJobResponse)
def resume_import(
    job_id: str,
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> ResumeJobResponse:
    try:
        info = service.resume_job(db=db, job_id=job_id)
    except ImportJobError as exc:
        _raise_http_error(exc)
    return ResumeJobResponse.from_info(info)


@router.get("/{job_id}/errors", response_model=ImportErrorReportResponse)
def get_error_report(
    job_id: str,
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> ImportErrorReportResponse:
    try:
        errors = service.get_error_report(db=db, job_id=job_id)
    except ImportJobError as exc:
        _raise_http_error(exc)
    return ImportErrorReportResponse(
        job_id=job_id,
        errors=[ChunkRowErrorResponse(**error) for error in errors],
    )


@router.get("/{job_id}/errors.csv")
def download_error_report(
    job_id: str,
    db: Session = Depends(get_db),
    service: ImportJobService = Depends(get_import_job_service),
) -> Response:
    try:
        errors = service.get_error_report(db=db, job_id=job_id)
    except ImportJobError as exc:
        _raise_http_error(exc)
    return Response(
        content=render_error_report_csv(errors),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="import-errors-{job_id}.csv"'},
    )
