"""
app/schemas package marker.
"""

from app.schemas.case_import import (
    BatchImportRequest,
    BatchImportResponse,
    ChunkRowErrorResponse,
    ColumnMappingResponse,
    CreateImportJobRequest,
    ImportErrorReportResponse,
    ImportHistoryResponse,
    ImportJobStatusResponse,
    ImportPreviewResponse,
    ImportRowPayload,
    ResumeJobResponse,
    RowIssueResponse,
)

__all__ = [
    "BatchImportRequest",
    "BatchImportResponse",
    "ChunkRowErrorResponse",
    "ColumnMappingResponse",
    "CreateImportJobRequest",
    "ImportErrorReportResponse",
    "ImportHistoryResponse",
    "ImportJobStatusResponse",
    "ImportPreviewResponse",
    "ImportRowPayload",
    "ResumeJobResponse",
    "RowIssueResponse",
]
