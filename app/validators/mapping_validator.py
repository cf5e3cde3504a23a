"""
app/validators/mapping_validator.py

Validation for column-to-schema mappings before rows are validated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from app.domain.case_import import CASE_SCHEMA_FIELDS, ColumnMapping, SchemaField


@dataclass(frozen=True)
class MappingErrorDetail:
    """
    Structured mapping error detail.
    """

    code: str
    message: str
    schema_field: str | None = None
    source_column: str | None = None
    context: dict[str, Any] | None = None


class SchemaMappingError(ValueError):
    """
    Raised when a column mapping cannot be used to transform rows safely.
    """

    def __init__(self, *, message: str, errors: Sequence[MappingErrorDetail]) -> None:
        super().__init__(message)
        self.message = message
        self.errors = tuple(errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "errors": [
                {
                    "code": error.code,
                    "message": error.message,
                    "schema_field": error.schema_field,
                    "source_column": error.source_column,
                    "context": error.context,
                }
                for error in self.errors
            ],
        }


class MappingValidator:
    """
    Validates committed column mappings against the schema.
    """

    def __init__(self, *, schema_fields: Sequence[SchemaField] = CASE_SCHEMA_FIELDS) -> None:
        self._schema_fields = tuple(schema_fields)
        self._fields_by_name = {item.name: item for item in self._schema_fields}

    def missing_required(self, mappings: Sequence[ColumnMapping]) -> list[SchemaField]:
        """
        Return required schema fields without a committed mapping, in schema order.
        """

        mapped = {mapping.schema_field for mapping in mappings if mapping.schema_field}
        return [
            item
            for item in self._schema_fields
            if item.required and item.name not in mapped
        ]

    def validate(self, mappings: Sequence[ColumnMapping]) -> None:
        """
        Validate mappings and raise structured errors if invalid.
        """

        errors: list[MappingErrorDetail] = []
        claimed: dict[str, str] = {}

        for mapping in mappings:
            if mapping.schema_field is None:
                continue
            if mapping.schema_field not in self._fields_by_name:
                errors.append(
                    MappingErrorDetail(
                        code="unknown_schema_field",
                        message="Mapping targets a field that is not part of the schema.",
                        schema_field=mapping.schema_field,
                        source_column=mapping.source_column,
                    )
                )
                continue
            previous = claimed.get(mapping.schema_field)
            if previous is not None:
                errors.append(
                    MappingErrorDetail(
                        code="duplicate_field_assignment",
                        message="Schema field is assigned to more than one source column.",
                        schema_field=mapping.schema_field,
                        source_column=mapping.source_column,
                        context={"first_source_column": previous},
                    )
                )
                continue
            claimed[mapping.schema_field] = mapping.source_column

        source_columns = [mapping.source_column for mapping in mappings]
        for required in self.missing_required(mappings):
            errors.append(
                MappingErrorDetail(
                    code="required_field_unmapped",
                    message=f"Required field '{required.label}' has no source column.",
                    schema_field=required.name,
                    context={"source_columns": source_columns},
                )
            )

        if errors:
            missing_required = [
                self._fields_by_name[error.schema_field].label
                for error in errors
                if error.code == "required_field_unmapped" and error.schema_field
            ]
            missing_csv = ", ".join(missing_required) or "none"
            raise SchemaMappingError(
                message=f"Column mapping validation failed. Missing required fields: {missing_csv}.",
                errors=errors,
            )
