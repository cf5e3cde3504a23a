"""
Repository layer exports.
"""

from db.repositories.errors import (
    ChunkPersistenceError,
    ImportJobError,
    ImportJobNotFoundError,
    InvalidJobStateError,
)
from db.repositories.import_job_repository import ImportJobRepository

__all__ = [
    "ImportJobRepository",
    "ImportJobError",
    "ImportJobNotFoundError",
    "InvalidJobStateError",
    "ChunkPersistenceError",
]
