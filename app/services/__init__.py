"""
app/services package marker.
"""

from app.services.batch_submission import (
    BatchSubmissionCoordinator,
    ChunkTransportError,
    CoordinatorState,
    ImportStore,
)
from app.services.csv_reader import CSVHeaderValidationError, read_csv_bytes
from app.services.import_job_service import (
    ImportJobService,
    LocalImportStore,
    get_import_job_service,
)
from app.services.import_session import ImportSession, RowLockedError, RowNotFoundError

__all__ = [
    "BatchSubmissionCoordinator",
    "ChunkTransportError",
    "CoordinatorState",
    "ImportStore",
    "CSVHeaderValidationError",
    "read_csv_bytes",
    "ImportJobService",
    "LocalImportStore",
    "get_import_job_service",
    "ImportSession",
    "RowLockedError",
    "RowNotFoundError",
]
