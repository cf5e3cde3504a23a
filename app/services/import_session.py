"""
app/services/import_session.py

Client-side session context for one uploaded file.

A session is created at upload, owns the rows, their mappings, validation
results and statuses, and is cleared by ``reset()``. Nothing here is shared
across sessions.
"""

from __future__ import annotations

import functools
import logging
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from app.config import get_case_import_settings
from app.domain.case_import import CaseRow, ColumnMapping, RowStatus, ValidationError
from app.mappers.column_mapper import ColumnMapper
from app.services.csv_reader import ParsedCSV, read_csv_bytes
from app.services.row_state import LOCKED_STATUSES, RowStateMachine
from app.validators.case_row_validator import CaseRowValidator
from app.validators.fix_helpers import get_fix_helper, normalize_phone

logger = logging.getLogger(__name__)


class RowNotFoundError(LookupError):
    """
    Raised when a row id does not belong to the session.
    """


class RowLockedError(RuntimeError):
    """
    Raised when editing a row that is being or has been submitted.
    """


@dataclass(frozen=True)
class ValidationSummary:
    """
    Aggregate counts for the validation dashboard.
    """

    total_rows: int
    valid_rows: int
    invalid_rows: int
    top_errors: list[tuple[str, int]] = field(default_factory=list)


class ImportSession:
    """
    Holds all mutable state for one import from upload until reset.
    """

    def __init__(
        self,
        *,
        file_name: str,
        parsed: ParsedCSV,
        mapper: ColumnMapper | None = None,
        validator: CaseRowValidator | None = None,
        phone_country_code: str | None = None,
    ) -> None:
        settings = get_case_import_settings()
        self.file_name = file_name
        self.headers: tuple[str, ...] = parsed.headers
        self._records = list(parsed.records)
        self._mapper = mapper or ColumnMapper()
        self._phone_country_code = phone_country_code or settings.default_phone_country_code
        self._validator = validator or CaseRowValidator(
            phone_country_code=self._phone_country_code,
            log_validation_errors=settings.log_validation_errors,
        )
        self.row_states = RowStateMachine()
        self.mappings: list[ColumnMapping] = []
        self.rows: list[CaseRow] = []
        self.validation_errors: dict[str, list[ValidationError]] = {}
        self.generation = 0
        self._dirty_rows: set[str] = set()
        self._rows_by_id: dict[str, CaseRow] = {}

    @classmethod
    def from_csv(cls, *, file_name: str, content: bytes, **kwargs: object) -> ImportSession:
        session = cls(file_name=file_name, parsed=read_csv_bytes(content), **kwargs)  # type: ignore[arg-type]
        session.auto_map()
        logger.info(
            "Import session created file=%r headers=%s records=%s",
            file_name,
            len(session.headers),
            len(session._records),
        )
        return session

    @property
    def record_count(self) -> int:
        return len(self._records)

    @property
    def dirty_rows(self) -> frozenset[str]:
        return frozenset(self._dirty_rows)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def auto_map(self) -> list[ColumnMapping]:
        self.mappings = self._mapper.auto_map(self.headers)
        return self.mappings

    def override_mapping(self, source_column: str, schema_field: str | None) -> list[ColumnMapping]:
        self.mappings = self._mapper.override_mapping(
            self.mappings,
            source_column=source_column,
            schema_field=schema_field,
        )
        return self.mappings

    def unmapped_required_fields(self) -> list[str]:
        return self._mapper.get_unmapped_required_fields(self.mappings)

    def apply_mapping(self, *, force: bool = False) -> list[CaseRow]:
        """
        Transform records into rows; blocked by unmapped required fields unless forced.
        """

        if not force:
            self._mapper.validator.validate(self.mappings)

        self.rows = self._mapper.apply_mapping(self._records, self.mappings)
        self._rows_by_id = {row.row_id: row for row in self.rows}
        self.row_states.reset()
        self.row_states.register(self._rows_by_id)
        self.validation_errors = {}
        self._dirty_rows = set(self._rows_by_id)
        self.generation += 1
        return self.rows

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> dict[str, list[ValidationError]]:
        """
        Recompute validation for the whole dataset and refresh row statuses.
        """

        errors = self._validator.validate_all_rows(self.rows)
        self.validation_errors = errors
        self.row_states.apply_validation(errors)
        self._dirty_rows.clear()
        logger.info(
            "Import session validated file=%r generation=%s rows=%s invalid=%s",
            self.file_name,
            self.generation,
            len(self.rows),
            len(errors),
        )
        return errors

    def row_issues(self, row_id: str) -> list[ValidationError]:
        """
        Current issues for one row, advisory notices included.
        """

        row = self.get_row(row_id)
        issues = self._validator.validate_row(row)
        issues.extend(
            error
            for error in self.validation_errors.get(row_id, ())
            if error.code == "duplicate_in_file"
        )
        return issues

    def summary(self, *, top: int = 5) -> ValidationSummary:
        counts = self.row_states.counts()
        field_counts: Counter[str] = Counter()
        for errors in self.validation_errors.values():
            field_counts.update(error.field for error in errors if error.blocking)
        return ValidationSummary(
            total_rows=len(self.rows),
            valid_rows=counts[RowStatus.VALID],
            invalid_rows=counts[RowStatus.INVALID],
            top_errors=field_counts.most_common(top),
        )

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def get_row(self, row_id: str) -> CaseRow:
        try:
            return self._rows_by_id[row_id]
        except KeyError as exc:
            raise RowNotFoundError(f"Row not found: {row_id}") from exc

    def update_cell(self, row_id: str, field_name: str, value: str) -> None:
        row = self._editable_row(row_id)
        if row.get(field_name) == value:
            return
        row.set(field_name, value)
        self._mark_dirty([row_id])

    def apply_fix(
        self,
        field_name: str,
        fix_name: str,
        *,
        row_ids: Iterable[str] | None = None,
    ) -> int:
        """
        Apply a named fix helper to ``field_name`` across rows; returns rows changed.

        Rows locked by submission are skipped when no explicit ids are given.
        """

        fix = self._resolve_fix(fix_name)
        if row_ids is None:
            targets = [row for row in self.rows if not self.row_states.is_locked(row.row_id)]
        else:
            targets = [self._editable_row(row_id) for row_id in row_ids]

        changed: list[str] = []
        for row in targets:
            current = row.get(field_name)
            fixed = fix(current)
            if fixed != current:
                row.set(field_name, fixed)
                changed.append(row.row_id)

        self._mark_dirty(changed)
        logger.info(
            "Applied fix helper fix=%s field=%s rows_changed=%s",
            fix_name,
            field_name,
            len(changed),
        )
        return len(changed)

    def submission_rows(self) -> list[CaseRow]:
        """
        Rows currently valid, in original order.
        """

        return [row for row in self.rows if self.row_states.status_of(row.row_id) is RowStatus.VALID]

    def reset(self) -> None:
        self._records = []
        self.headers = ()
        self.mappings = []
        self.rows = []
        self._rows_by_id = {}
        self.validation_errors = {}
        self._dirty_rows.clear()
        self.row_states.reset()
        self.generation = 0

    def _editable_row(self, row_id: str) -> CaseRow:
        row = self.get_row(row_id)
        if self.row_states.is_locked(row_id):
            status = self.row_states.status_of(row_id)
            if status in LOCKED_STATUSES:
                raise RowLockedError(f"Row {row_id} is {status.value} and can no longer be edited.")
            raise RowLockedError(f"Row {row_id} is reserved by a running submission and cannot be edited.")
        return row

    def _mark_dirty(self, row_ids: list[str]) -> None:
        if not row_ids:
            return
        self._dirty_rows.update(row_ids)
        self.generation += 1

    def _resolve_fix(self, fix_name: str) -> Callable[[str], str]:
        if fix_name == "normalize_phone":
            return functools.partial(normalize_phone, country_code=self._phone_country_code)
        return get_fix_helper(fix_name)
