"""
app/validators/case_row_validator.py

Row-level and dataset-level validation for case import rows.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date, datetime
from typing import Any, Sequence

from app.domain.case_import import CaseRow, Category, Priority, ValidationError, parse_enum
from app.validators.fix_helpers import (
    DEFAULT_PHONE_COUNTRY_CODE,
    normalize_phone,
    strip_phone_separators,
    trim_whitespace,
)

logger = logging.getLogger(__name__)

MIN_BIRTH_YEAR = 1900

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
_BARE_TEN_DIGITS = re.compile(r"^\d{10}$")

ALLOWED_CATEGORIES = tuple(member.value for member in Category)
ALLOWED_PRIORITIES = tuple(member.value for member in Priority)


def parse_calendar_date(value: Any) -> date | None:
    """
    Parse a date-of-birth style value; returns None when it is not a date.
    """

    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue

    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return datetime.fromisoformat(normalized).date()
    except ValueError:
        return None


class CaseRowValidator:
    """
    Validates case rows and computes advisory fix suggestions.
    """

    def __init__(
        self,
        *,
        phone_country_code: str = DEFAULT_PHONE_COUNTRY_CODE,
        today: Callable[[], date] | None = None,
        log_validation_errors: bool = False,
    ) -> None:
        self._phone_country_code = phone_country_code
        self._today = today or date.today
        self._log_validation_errors = log_validation_errors

    def validate_row(self, row: CaseRow) -> list[ValidationError]:
        """
        Validate one row. Every rule reports independently.
        """

        errors: list[ValidationError] = []
        self._check_required_string(row.case_id, field="case_id", label="Case ID", errors=errors)
        self._check_applicant_name(row.applicant_name, errors=errors)
        self._check_dob(row.dob, errors=errors)
        self._check_email(row.email, errors=errors)
        self._check_phone(row.phone, errors=errors)
        self._check_category(row.category, errors=errors)
        self._check_priority(row.priority, errors=errors)
        return errors

    def validate_all_rows(self, rows: Sequence[CaseRow]) -> dict[str, list[ValidationError]]:
        """
        Validate every row and flag repeated case ids after their first occurrence.

        Rows without blocking errors are omitted from the result.
        """

        errors_by_row: dict[str, list[ValidationError]] = {}
        seen_case_ids: set[str] = set()

        for row in rows:
            errors = self.validate_row(row)

            case_id = row.case_id.strip()
            if case_id:
                if case_id in seen_case_ids:
                    errors.append(
                        ValidationError(
                            field="case_id",
                            message="Duplicate case ID in file",
                            code="duplicate_in_file",
                            value=row.case_id,
                        )
                    )
                seen_case_ids.add(case_id)

            if any(error.blocking for error in errors):
                errors_by_row[row.row_id] = errors
                if self._log_validation_errors:
                    for error in errors:
                        logger.warning(
                            "Case row validation error row=%s field=%s code=%s message=%s value=%r",
                            row.row_id,
                            error.field,
                            error.code,
                            error.message,
                            error.value,
                        )

        return errors_by_row

    def _check_required_string(
        self,
        value: str,
        *,
        field: str,
        label: str,
        errors: list[ValidationError],
    ) -> bool:
        if value.strip():
            return True
        errors.append(
            ValidationError(
                field=field,
                message=f"{label} is required",
                code="required",
                value=value,
            )
        )
        return False

    def _check_applicant_name(self, value: str, *, errors: list[ValidationError]) -> None:
        if not self._check_required_string(
            value,
            field="applicant_name",
            label="Applicant name",
            errors=errors,
        ):
            return

        collapsed = trim_whitespace(value)
        if collapsed != value:
            errors.append(
                ValidationError(
                    field="applicant_name",
                    message="Applicant name contains extra whitespace",
                    code="whitespace",
                    value=value,
                    suggestion=collapsed,
                    blocking=False,
                )
            )

    def _check_dob(self, value: str, *, errors: list[ValidationError]) -> None:
        if not self._check_required_string(value, field="dob", label="Date of birth", errors=errors):
            return

        parsed = parse_calendar_date(value)
        if parsed is None:
            errors.append(
                ValidationError(
                    field="dob",
                    message="Invalid date format",
                    code="invalid_date",
                    value=value,
                )
            )
            return

        current_year = self._today().year
        if not MIN_BIRTH_YEAR <= parsed.year <= current_year:
            errors.append(
                ValidationError(
                    field="dob",
                    message=f"Invalid date (must be between {MIN_BIRTH_YEAR} and today)",
                    code="date_out_of_range",
                    value=value,
                )
            )

    def _check_email(self, value: str, *, errors: list[ValidationError]) -> None:
        raw = value.strip()
        if not raw:
            return
        if not EMAIL_PATTERN.match(raw):
            errors.append(
                ValidationError(
                    field="email",
                    message="Invalid email format",
                    code="invalid_email",
                    value=value,
                )
            )

    def _check_phone(self, value: str, *, errors: list[ValidationError]) -> None:
        if not value.strip():
            return

        cleaned = strip_phone_separators(value)
        suggestion = None
        if _BARE_TEN_DIGITS.match(cleaned):
            suggestion = normalize_phone(value, country_code=self._phone_country_code)

        if not PHONE_PATTERN.match(cleaned):
            errors.append(
                ValidationError(
                    field="phone",
                    message="Invalid phone format (use E.164)",
                    code="invalid_phone",
                    value=value,
                    suggestion=suggestion,
                )
            )
        elif suggestion is not None:
            errors.append(
                ValidationError(
                    field="phone",
                    message="Phone number has no country code",
                    code="phone_country_code",
                    value=value,
                    suggestion=suggestion,
                    blocking=False,
                )
            )

    def _check_category(self, value: str, *, errors: list[ValidationError]) -> None:
        if not self._check_required_string(value, field="category", label="Category", errors=errors):
            return
        if value.strip() in ALLOWED_CATEGORIES:
            return

        parsed = parse_enum(Category, value)
        errors.append(
            ValidationError(
                field="category",
                message=f"Category must be {_describe_allowed(ALLOWED_CATEGORIES)}",
                code="invalid_category",
                value=value,
                suggestion=parsed.value.value if parsed.ok else None,
            )
        )

    def _check_priority(self, value: str, *, errors: list[ValidationError]) -> None:
        # Blank priority defaults to LOW at the data layer.
        if not value.strip() or value.strip() in ALLOWED_PRIORITIES:
            return

        parsed = parse_enum(Priority, value)
        errors.append(
            ValidationError(
                field="priority",
                message=f"Priority must be {_describe_allowed(ALLOWED_PRIORITIES)}",
                code="invalid_priority",
                value=value,
                suggestion=parsed.value.value if parsed.ok else None,
            )
        )


def _describe_allowed(values: Sequence[str]) -> str:
    return ", ".join(values[:-1]) + f", or {values[-1]}"
