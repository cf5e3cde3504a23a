"""
tests/test_import_session.py

Pytest tests for the per-upload ImportSession context.
"""

from __future__ import annotations

from datetime import date

import pytest

from app.domain.case_import import RowStatus
from app.services.import_session import ImportSession, RowLockedError, RowNotFoundError
from app.validators.case_row_validator import CaseRowValidator
from app.validators.mapping_validator import SchemaMappingError

CSV_CONTENT = (
    "Case ID,Name,DOB,Email,Phone,Category,Priority\n"
    "C-1,John  Doe,1990-01-01,john@example.com,9876543210,TAX,\n"
    "C-2,,1985-02-02,,,tax,HIGH\n"
    "C-1,Ann,1980-01-01,,,PERMIT,low\n"
    "C-4,Bob,1975-05-05,bad-email,,LICENSE,\n"
).encode("utf-8")


@pytest.fixture()
def session() -> ImportSession:
    session = ImportSession.from_csv(
        file_name="cases.csv",
        content=CSV_CONTENT,
        validator=CaseRowValidator(today=lambda: date(2026, 10, 19)),
    )
    session.apply_mapping()
    session.validate()
    return session


def test_upload_is_auto_mapped(session: ImportSession) -> None:
    assert session.headers == ("case_id", "name", "dob", "email", "phone", "category", "priority")
    assert [mapping.schema_field for mapping in session.mappings] == [
        "case_id",
        "applicant_name",
        "dob",
        "email",
        "phone",
        "category",
        "priority",
    ]
    assert session.unmapped_required_fields() == []
    assert session.record_count == 4


def test_enum_columns_are_coerced_on_mapping(session: ImportSession) -> None:
    assert session.get_row("row-1").category == "TAX"
    assert session.get_row("row-2").priority == "LOW"


def test_validation_updates_statuses_and_summary(session: ImportSession) -> None:
    assert set(session.validation_errors) == {"row-1", "row-2", "row-3"}
    assert session.row_states.status_of("row-0") is RowStatus.VALID

    summary = session.summary()
    assert (summary.total_rows, summary.valid_rows, summary.invalid_rows) == (4, 1, 3)
    assert dict(summary.top_errors) == {"applicant_name": 1, "case_id": 1, "email": 1}


def test_edit_then_revalidate(session: ImportSession) -> None:
    generation = session.generation

    session.update_cell("row-3", "email", "bob@example.com")

    assert session.generation == generation + 1
    assert "row-3" in session.dirty_rows

    session.validate()

    assert session.dirty_rows == frozenset()
    assert [row.row_id for row in session.submission_rows()] == ["row-0", "row-3"]


def test_unchanged_edit_is_not_dirty(session: ImportSession) -> None:
    generation = session.generation

    session.update_cell("row-0", "case_id", "C-1")

    assert session.generation == generation
    assert session.dirty_rows == frozenset()


def test_apply_fix_reports_changed_rows(session: ImportSession) -> None:
    assert session.apply_fix("applicant_name", "trim_whitespace") == 1
    assert session.get_row("row-0").applicant_name == "John Doe"

    assert session.apply_fix("phone", "normalize_phone", row_ids=["row-0"]) == 1
    assert session.get_row("row-0").phone == "+919876543210"

    with pytest.raises(ValueError):
        session.apply_fix("phone", "unknown_fix")


def test_row_issues_include_advisories_and_duplicates(session: ImportSession) -> None:
    advisories = session.row_issues("row-0")
    assert {issue.code for issue in advisories} == {"whitespace", "phone_country_code"}
    assert not any(issue.blocking for issue in advisories)

    assert [issue.code for issue in session.row_issues("row-2")] == ["duplicate_in_file"]


def test_locked_rows_cannot_be_edited(session: ImportSession) -> None:
    session.row_states.mark_submitting("row-0")

    with pytest.raises(RowLockedError):
        session.update_cell("row-0", "applicant_name", "Other")
    with pytest.raises(RowLockedError):
        session.apply_fix("applicant_name", "trim_whitespace", row_ids=["row-0"])

    assert session.apply_fix("applicant_name", "trim_whitespace") == 0
    assert session.get_row("row-0").applicant_name == "John  Doe"


def test_reserved_rows_keep_status_and_reject_edits(session: ImportSession) -> None:
    session.row_states.reserve(["row-0"])

    with pytest.raises(RowLockedError, match="reserved"):
        session.update_cell("row-0", "email", "other@example.com")
    assert session.apply_fix("applicant_name", "trim_whitespace") == 0

    session.get_row("row-0").set("email", "broken")
    session.validate()

    assert session.row_states.status_of("row-0") is RowStatus.VALID
    assert "row-0" in session.validation_errors

    session.row_states.release(["row-0"])
    session.validate()
    assert session.row_states.status_of("row-0") is RowStatus.INVALID


def test_unknown_row_raises(session: ImportSession) -> None:
    with pytest.raises(RowNotFoundError):
        session.update_cell("row-99", "email", "x@example.com")


def test_override_mapping_through_session(session: ImportSession) -> None:
    session.override_mapping("email", None)

    assert session.mappings[3].schema_field is None
    rows = session.apply_mapping()
    assert rows[0].email == ""
    assert rows[0].extras == {"email": "john@example.com"}


def test_mapping_gate_blocks_missing_required_fields() -> None:
    session = ImportSession.from_csv(file_name="partial.csv", content=b"case_id,email\nC-1,a@b.co\n")

    assert session.unmapped_required_fields() == ["Applicant Name", "Date of Birth", "Category"]
    with pytest.raises(SchemaMappingError):
        session.apply_mapping()

    rows = session.apply_mapping(force=True)
    assert rows[0].case_id == "C-1"


def test_reset_clears_everything(session: ImportSession) -> None:
    session.reset()

    assert session.rows == []
    assert session.mappings == []
    assert session.validation_errors == {}
    assert session.generation == 0
    assert len(session.row_states) == 0
