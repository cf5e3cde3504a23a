"""
app/repositories/case_repository.py

Persistence layer for imported case records.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.case_record import CaseRecord

_LOOKUP_BATCH_SIZE = 500


class CaseRepository:
    """
    Repository for case lookups and chunk inserts.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def existing_case_ids(self, case_ids: Iterable[str]) -> set[str]:
        """
        Return the subset of ``case_ids`` already committed.
        """

        candidates = sorted({case_id for case_id in case_ids if case_id})
        found: set[str] = set()
        for start in range(0, len(candidates), _LOOKUP_BATCH_SIZE):
            batch = candidates[start : start + _LOOKUP_BATCH_SIZE]
            stmt = select(CaseRecord.case_id).where(CaseRecord.case_id.in_(batch))
            found.update(self._session.scalars(stmt).all())
        return found

    def add_cases(
        self,
        payloads: Sequence[dict[str, Any]],
        *,
        import_job_id: uuid.UUID | None = None,
        user_id: str | None = None,
    ) -> list[CaseRecord]:
        """
        Stage validated case payloads and flush them in one round trip.
        """

        if not payloads:
            return []

        records = [
            CaseRecord(
                case_id=payload["case_id"],
                applicant_name=payload["applicant_name"],
                dob=_as_date(payload["dob"]),
                email=payload.get("email"),
                phone=payload.get("phone"),
                category=payload["category"],
                priority=payload["priority"],
                import_job_id=import_job_id,
                user_id=user_id,
            )
            for payload in payloads
        ]
        self._session.add_all(records)
        self._session.flush()
        return records


def _as_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)
