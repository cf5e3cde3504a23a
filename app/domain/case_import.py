"""
app/domain/case_import.py

Domain models used by the case import pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar


@dataclass(frozen=True)
class SchemaField:
    """
    One target attribute of the case schema.
    """

    name: str
    label: str
    required: bool
    aliases: tuple[str, ...] = ()


CASE_SCHEMA_FIELDS: tuple[SchemaField, ...] = (
    SchemaField(
        name="case_id",
        label="Case ID",
        required=True,
        aliases=("caseid", "case_number", "case_no", "id", "case", "reference", "ref"),
    ),
    SchemaField(
        name="applicant_name",
        label="Applicant Name",
        required=True,
        aliases=("name", "applicant", "full_name", "fullname", "person", "client", "customer"),
    ),
    SchemaField(
        name="dob",
        label="Date of Birth",
        required=True,
        aliases=("date_of_birth", "dateofbirth", "birth_date", "birthdate", "birthday", "born"),
    ),
    SchemaField(
        name="email",
        label="Email",
        required=False,
        aliases=("email_address", "emailaddress", "e-mail", "mail"),
    ),
    SchemaField(
        name="phone",
        label="Phone",
        required=False,
        aliases=("phone_number", "phonenumber", "telephone", "tel", "mobile", "cell", "contact"),
    ),
    SchemaField(
        name="category",
        label="Category",
        required=True,
        aliases=("type", "case_type", "casetype", "cat", "classification"),
    ),
    SchemaField(
        name="priority",
        label="Priority",
        required=False,
        aliases=("prio", "urgency", "importance", "level"),
    ),
)

SCHEMA_FIELDS_BY_NAME: dict[str, SchemaField] = {item.name: item for item in CASE_SCHEMA_FIELDS}

CASE_FIELD_NAMES: tuple[str, ...] = tuple(item.name for item in CASE_SCHEMA_FIELDS)


class Category(str, Enum):
    TAX = "TAX"
    LICENSE = "LICENSE"
    PERMIT = "PERMIT"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


DEFAULT_PRIORITY = Priority.LOW


class RowStatus(str, Enum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


EnumT = TypeVar("EnumT", bound=Enum)


@dataclass(frozen=True)
class EnumParseResult:
    """
    Outcome of coercing free text into a closed enum.

    Exactly one of ``value`` (parsed member) or ``original`` (rejected text)
    is meaningful, selected by ``ok``.
    """

    ok: bool
    value: Any = None
    original: str = ""


def parse_enum(enum_cls: type[EnumT], text: str | None) -> EnumParseResult:
    """
    Parse text into a member of ``enum_cls`` by upper-casing its stripped value.
    """

    raw = "" if text is None else str(text)
    token = raw.strip().upper()
    for member in enum_cls:
        if member.value == token:
            return EnumParseResult(ok=True, value=member, original=raw)
    return EnumParseResult(ok=False, original=raw)


@dataclass(frozen=True)
class ColumnMapping:
    """
    Assignment of one source column to a schema field (or to nothing).
    """

    source_column: str
    schema_field: str | None = None
    confidence: float = 0.0
    is_auto_assigned: bool = False

    @property
    def confidence_level(self) -> str:
        if self.confidence >= 0.9:
            return "high"
        if self.confidence >= 0.7:
            return "medium"
        return "low"


@dataclass
class CaseRow:
    """
    One ingested record shaped to the case schema.

    Unrecognized source columns are kept in ``extras`` so the schema fields
    stay a fixed, checkable set.
    """

    row_id: str
    case_id: str = ""
    applicant_name: str = ""
    dob: str = ""
    email: str = ""
    phone: str = ""
    category: str = ""
    priority: str = ""
    extras: dict[str, str] = field(default_factory=dict)

    def get(self, field_name: str) -> str:
        _require_case_field(field_name)
        return getattr(self, field_name)

    def set(self, field_name: str, value: str | None) -> None:
        _require_case_field(field_name)
        setattr(self, field_name, "" if value is None else str(value))

    def effective_priority(self) -> str:
        """
        Priority value used at the data layer; blanks default to LOW.
        """

        if not self.priority.strip():
            return DEFAULT_PRIORITY.value
        return self.priority

    def to_submission(self) -> dict[str, Any]:
        """
        Build the chunk payload for one row.
        """

        return {
            "case_id": self.case_id.strip(),
            "applicant_name": self.applicant_name.strip(),
            "dob": self.dob.strip(),
            "email": self.email.strip() or None,
            "phone": self.phone.strip() or None,
            "category": self.category.strip(),
            "priority": self.effective_priority().strip(),
        }


def _require_case_field(field_name: str) -> None:
    if field_name not in SCHEMA_FIELDS_BY_NAME:
        raise KeyError(f"Unknown case schema field: {field_name}")


@dataclass(frozen=True)
class ValidationError:
    """
    One field-level validation issue for a row.

    Non-blocking entries are advisory: they carry a suggestion but do not
    make the row invalid.
    """

    field: str
    message: str
    code: str
    value: str | None = None
    suggestion: str | None = None
    blocking: bool = True


@dataclass(frozen=True)
class ChunkRowError:
    """
    Store-side rejection of one submitted row.
    """

    index: int
    case_id: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "case_id": self.case_id,
            "message": self.message,
            "code": self.code,
        }


@dataclass(frozen=True)
class ChunkResult:
    """
    Outcome of committing one chunk.
    """

    success_count: int
    failed_count: int
    errors: list[ChunkRowError] = field(default_factory=list)


@dataclass(frozen=True)
class JobStatusSnapshot:
    """
    Point-in-time view of an import job's ledger.
    """

    job_id: str
    file_name: str
    status: str
    total_rows: int
    processed_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    last_processed_index: int = -1
    created_at: datetime | None = None

    @property
    def progress_percent(self) -> int:
        if self.total_rows <= 0:
            return 0
        return round(self.processed_rows / self.total_rows * 100)

    @property
    def remaining_rows(self) -> int:
        return max(0, self.total_rows - self.processed_rows)


@dataclass(frozen=True)
class ResumeInfo:
    """
    Result of resuming a paused job.
    """

    job_id: str
    last_processed_index: int
    remaining_rows: int
