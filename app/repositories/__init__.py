"""
app/repositories package marker.
"""

from app.repositories.case_repository import CaseRepository

__all__ = [
    "CaseRepository",
]
