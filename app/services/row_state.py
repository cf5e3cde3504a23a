"""
app/services/row_state.py

Per-row lifecycle tracking for an import session.

    pending -> valid | invalid          (validation, repeatable)
    valid -> submitting                 (chunk sent)
    submitting -> success | failed      (chunk result)

Rows that reached submission are locked against revalidation. Rows bound
to a running job are reserved: they keep their status but cannot be
revalidated or edited until the job releases them.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence

from app.domain.case_import import RowStatus, ValidationError

logger = logging.getLogger(__name__)

LOCKED_STATUSES = frozenset({RowStatus.SUBMITTING, RowStatus.SUCCESS, RowStatus.FAILED})
SUBMITTABLE_STATUSES = frozenset({RowStatus.VALID, RowStatus.FAILED, RowStatus.SUBMITTING})


class InvalidRowTransitionError(ValueError):
    """
    Raised when a row is asked to move along an edge the lifecycle does not have.
    """

    def __init__(self, *, row_id: str, current: RowStatus | None, target: RowStatus) -> None:
        current_label = current.value if current is not None else "<unregistered>"
        super().__init__(f"Row {row_id} cannot move from {current_label} to {target.value}.")
        self.row_id = row_id
        self.current = current
        self.target = target


class RowStateMachine:
    """
    Holds exactly one status per registered row.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, RowStatus] = {}
        self._reserved: set[str] = set()

    def register(self, row_ids: Iterable[str]) -> None:
        for row_id in row_ids:
            self._statuses[row_id] = RowStatus.PENDING

    def status_of(self, row_id: str) -> RowStatus:
        try:
            return self._statuses[row_id]
        except KeyError as exc:
            raise KeyError(f"Row is not registered: {row_id}") from exc

    def is_locked(self, row_id: str) -> bool:
        return row_id in self._reserved or self._statuses.get(row_id) in LOCKED_STATUSES

    def can_submit(self, row_id: str) -> bool:
        return self._statuses.get(row_id) in SUBMITTABLE_STATUSES

    def reserve(self, row_ids: Iterable[str]) -> None:
        """
        Hold registered rows for a submission job.
        """

        self._reserved.update(row_id for row_id in row_ids if row_id in self._statuses)

    def release(self, row_ids: Iterable[str] | None = None) -> None:
        if row_ids is None:
            self._reserved.clear()
        else:
            self._reserved.difference_update(row_ids)

    def apply_validation(
        self,
        errors_by_row: Mapping[str, Sequence[ValidationError]],
        *,
        row_ids: Iterable[str] | None = None,
    ) -> int:
        """
        Move rows in scope to valid/invalid; returns the number of rows updated.

        Locked and reserved rows keep their status.
        """

        scope = list(row_ids) if row_ids is not None else list(self._statuses)
        updated = 0
        for row_id in scope:
            current = self._statuses.get(row_id)
            if current is None:
                continue
            if self.is_locked(row_id):
                logger.debug("Skipping revalidation of locked row row=%s status=%s", row_id, current.value)
                continue
            has_errors = any(error.blocking for error in errors_by_row.get(row_id, ()))
            self._statuses[row_id] = RowStatus.INVALID if has_errors else RowStatus.VALID
            updated += 1
        return updated

    def mark_submitting(self, row_id: str, *, retry: bool = False) -> None:
        allowed = {RowStatus.VALID, RowStatus.FAILED} if retry else {RowStatus.VALID}
        self._transition(row_id, allowed=allowed, target=RowStatus.SUBMITTING)

    def mark_success(self, row_id: str) -> None:
        self._transition(row_id, allowed={RowStatus.SUBMITTING}, target=RowStatus.SUCCESS)

    def mark_failed(self, row_id: str) -> None:
        self._transition(row_id, allowed={RowStatus.SUBMITTING}, target=RowStatus.FAILED)

    def rows_in(self, status: RowStatus) -> list[str]:
        return [row_id for row_id, current in self._statuses.items() if current is status]

    def counts(self) -> dict[RowStatus, int]:
        counter = Counter(self._statuses.values())
        return {status: counter.get(status, 0) for status in RowStatus}

    def reset(self) -> None:
        self._statuses.clear()
        self._reserved.clear()

    def __len__(self) -> int:
        return len(self._statuses)

    def _transition(self, row_id: str, *, allowed: set[RowStatus], target: RowStatus) -> None:
        current = self._statuses.get(row_id)
        if current not in allowed:
            raise InvalidRowTransitionError(row_id=row_id, current=current, target=target)
        self._statuses[row_id] = target
