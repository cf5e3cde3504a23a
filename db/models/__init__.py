"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.case_record import CaseRecord
from db.models.import_job import ImportJob

__all__ = [
    "CaseRecord",
    "ImportJob",
]
