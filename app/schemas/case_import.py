"""
app/schemas/case_import.py

Request and response schemas for case import endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.domain.case_import import ChunkResult, JobStatusSnapshot, ResumeInfo


class ColumnMappingResponse(BaseModel):
    source_column: str
    schema_field: str | None = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_level: str
    is_auto_assigned: bool


class RowIssueResponse(BaseModel):
    """
    One validation issue found while previewing an upload.
    """

    row_id: str
    field: str
    code: str
    message: str
    value: str | None = None
    suggestion: str | None = None
    blocking: bool = True


class FieldErrorCountResponse(BaseModel):
    field: str
    count: int = Field(..., ge=0)


class ImportPreviewResponse(BaseModel):
    """
    Mapping proposal and validation summary for an uploaded CSV.
    """

    file_name: str
    headers: list[str] = Field(default_factory=list)
    mappings: list[ColumnMappingResponse] = Field(default_factory=list)
    unmapped_required_fields: list[str] = Field(default_factory=list)
    total_rows: int = Field(..., ge=0)
    valid_rows: int = Field(..., ge=0)
    invalid_rows: int = Field(..., ge=0)
    top_errors: list[FieldErrorCountResponse] = Field(default_factory=list)
    issues: list[RowIssueResponse] = Field(default_factory=list)


class CreateImportJobRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    total_rows: int = Field(..., ge=1)


class ImportRowPayload(BaseModel):
    """
    One submitted row. Field-level problems are reported per row, not as 422s.
    """

    case_id: str = ""
    applicant_name: str = ""
    dob: str = ""
    email: str | None = None
    phone: str | None = None
    category: str = ""
    priority: str | None = None


class BatchImportRequest(BaseModel):
    rows: list[ImportRowPayload] = Field(..., min_length=1)
    start_index: int = Field(..., ge=0, description="Offset of the first row within the submitted set")


class ChunkRowErrorResponse(BaseModel):
    index: int = Field(..., ge=0)
    case_id: str
    message: str
    code: str = "invalid"


class BatchImportResponse(BaseModel):
    success_count: int = Field(..., ge=0)
    failed_count: int = Field(..., ge=0)
    errors: list[ChunkRowErrorResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ChunkResult) -> BatchImportResponse:
        return cls(
            success_count=result.success_count,
            failed_count=result.failed_count,
            errors=[ChunkRowErrorResponse(**error.to_dict()) for error in result.errors],
        )


class ImportJobStatusResponse(BaseModel):
    job_id: str
    file_name: str
    status: str
    total_rows: int = Field(..., ge=0)
    processed_rows: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    failed_count: int = Field(..., ge=0)
    last_processed_index: int = Field(..., ge=-1)
    progress_percent: int = Field(..., ge=0)
    remaining_rows: int = Field(..., ge=0)
    created_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: JobStatusSnapshot) -> ImportJobStatusResponse:
        return cls(
            job_id=snapshot.job_id,
            file_name=snapshot.file_name,
            status=snapshot.status,
            total_rows=snapshot.total_rows,
            processed_rows=snapshot.processed_rows,
            success_count=snapshot.success_count,
            failed_count=snapshot.failed_count,
            last_processed_index=snapshot.last_processed_index,
            progress_percent=snapshot.progress_percent,
            remaining_rows=snapshot.remaining_rows,
            created_at=snapshot.created_at,
        )

    def to_snapshot(self) -> JobStatusSnapshot:
        return JobStatusSnapshot(
            job_id=self.job_id,
            file_name=self.file_name,
            status=self.status,
            total_rows=self.total_rows,
            processed_rows=self.processed_rows,
            success_count=self.success_count,
            failed_count=self.failed_count,
            last_processed_index=self.last_processed_index,
            created_at=self.created_at,
        )


class ResumeJobResponse(BaseModel):
    job_id: str
    last_processed_index: int = Field(..., ge=-1)
    remaining_rows: int = Field(..., ge=0)

    @classmethod
    def from_info(cls, info: ResumeInfo) -> ResumeJobResponse:
        return cls(
            job_id=info.job_id,
            last_processed_index=info.last_processed_index,
            remaining_rows=info.remaining_rows,
        )


class ImportHistoryResponse(BaseModel):
    jobs: list[ImportJobStatusResponse] = Field(default_factory=list)


class ImportErrorReportResponse(BaseModel):
    job_id: str
    errors: list[ChunkRowErrorResponse] = Field(default_factory=list)
