"""
app/domain package marker.
"""

from app.domain.case_import import (
    CASE_SCHEMA_FIELDS,
    CaseRow,
    Category,
    ChunkResult,
    ChunkRowError,
    ColumnMapping,
    JobStatusSnapshot,
    Priority,
    ResumeInfo,
    RowStatus,
    SchemaField,
    ValidationError,
    parse_enum,
)

__all__ = [
    "CASE_SCHEMA_FIELDS",
    "CaseRow",
    "Category",
    "ChunkResult",
    "ChunkRowError",
    "ColumnMapping",
    "JobStatusSnapshot",
    "Priority",
    "ResumeInfo",
    "RowStatus",
    "SchemaField",
    "ValidationError",
    "parse_enum",
]
