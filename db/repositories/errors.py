"""
Repository-layer exceptions for the import job ledger.
"""

from __future__ import annotations

from typing import Any


class ImportJobError(Exception):
    """Base exception for import job failures."""

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.job_id = job_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "job_id": self.job_id,
        }


class ImportJobNotFoundError(ImportJobError):
    """Raised when a referenced import job does not exist."""


class InvalidJobStateError(ImportJobError):
    """Raised when a job's status does not allow the requested operation."""

    def __init__(self, message: str, *, job_id: str | None = None, status: str | None = None) -> None:
        super().__init__(message, job_id=job_id)
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["status"] = self.status
        return payload


class ChunkPersistenceError(ImportJobError):
    """Raised when a chunk cannot be committed as a whole."""
