"""
app/mappers/column_mapper.py

Fuzzy auto-mapping of CSV headers onto the case schema.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Mapping, Sequence

from app.domain.case_import import (
    CASE_SCHEMA_FIELDS,
    CaseRow,
    Category,
    ColumnMapping,
    Priority,
    SchemaField,
    parse_enum,
)
from app.mappers.similarity import normalize_token, similarity
from app.validators.mapping_validator import MappingErrorDetail, MappingValidator, SchemaMappingError

logger = logging.getLogger(__name__)

AUTO_MAP_THRESHOLD = 0.6

_ENUM_FIELDS = {
    "category": Category,
    "priority": Priority,
}

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_header(header: str) -> str:
    """
    Normalize a raw CSV header: trim, lowercase, whitespace runs to underscores.
    """

    return _WHITESPACE_RUN.sub("_", header.strip().lower())


@dataclass(frozen=True)
class _Proposal:
    position: int
    source_column: str
    schema_field: str | None
    confidence: float


class ColumnMapper:
    """
    Maps incoming CSV columns one-to-one onto schema fields.
    """

    def __init__(
        self,
        *,
        schema_fields: Sequence[SchemaField] = CASE_SCHEMA_FIELDS,
        threshold: float = AUTO_MAP_THRESHOLD,
        validator: MappingValidator | None = None,
    ) -> None:
        self._schema_fields = tuple(schema_fields)
        self._fields_by_name = {item.name: item for item in self._schema_fields}
        # Lower thresholds start pairing unrelated names.
        self._threshold = min(1.0, max(AUTO_MAP_THRESHOLD, threshold))
        self._validator = validator or MappingValidator(schema_fields=self._schema_fields)

    @property
    def validator(self) -> MappingValidator:
        return self._validator

    def auto_map(self, headers: Sequence[str]) -> list[ColumnMapping]:
        """
        Propose one mapping per header, preserving header order.
        """

        proposals = [
            self._best_proposal(position, header)
            for position, header in enumerate(headers)
        ]

        claimed: set[str] = set()
        committed: dict[int, _Proposal] = {}
        for proposal in sorted(proposals, key=lambda item: item.confidence, reverse=True):
            if proposal.schema_field is None or proposal.schema_field in claimed:
                continue
            claimed.add(proposal.schema_field)
            committed[proposal.position] = proposal

        mappings: list[ColumnMapping] = []
        for proposal in proposals:
            winner = committed.get(proposal.position)
            if winner is None:
                if proposal.schema_field is not None:
                    logger.debug(
                        "Column lost field to higher-confidence header column=%r field=%s score=%.3f",
                        proposal.source_column,
                        proposal.schema_field,
                        proposal.confidence,
                    )
                mappings.append(ColumnMapping(source_column=proposal.source_column))
                continue
            mappings.append(
                ColumnMapping(
                    source_column=winner.source_column,
                    schema_field=winner.schema_field,
                    confidence=winner.confidence,
                    is_auto_assigned=True,
                )
            )
        return mappings

    def get_unmapped_required_fields(self, mappings: Sequence[ColumnMapping]) -> list[str]:
        """
        Labels of required fields with no committed source column.
        """

        return [item.label for item in self._validator.missing_required(mappings)]

    def override_mapping(
        self,
        mappings: Sequence[ColumnMapping],
        *,
        source_column: str,
        schema_field: str | None,
    ) -> list[ColumnMapping]:
        """
        Return mappings with ``source_column`` reassigned by the user.

        Assigning a field another column already holds clears that other column.
        """

        errors: list[MappingErrorDetail] = []
        if schema_field is not None and schema_field not in self._fields_by_name:
            errors.append(
                MappingErrorDetail(
                    code="unknown_schema_field",
                    message="Override targets a field that is not part of the schema.",
                    schema_field=schema_field,
                    source_column=source_column,
                )
            )
        if all(mapping.source_column != source_column for mapping in mappings):
            errors.append(
                MappingErrorDetail(
                    code="unknown_source_column",
                    message="Override points to a column not present in the file.",
                    schema_field=schema_field,
                    source_column=source_column,
                )
            )
        if errors:
            raise SchemaMappingError(message="Invalid column mapping override.", errors=errors)

        updated: list[ColumnMapping] = []
        for mapping in mappings:
            if mapping.source_column == source_column:
                updated.append(
                    ColumnMapping(
                        source_column=source_column,
                        schema_field=schema_field,
                        confidence=1.0 if schema_field is not None else 0.0,
                        is_auto_assigned=False,
                    )
                )
            elif schema_field is not None and mapping.schema_field == schema_field:
                updated.append(replace(mapping, schema_field=None, confidence=0.0, is_auto_assigned=False))
            else:
                updated.append(mapping)
        return updated

    def apply_mapping(
        self,
        records: Sequence[Mapping[str, str | None]],
        mappings: Sequence[ColumnMapping],
    ) -> list[CaseRow]:
        """
        Transform raw records into schema-shaped rows with stable ids.
        """

        field_by_column = {
            mapping.source_column: mapping.schema_field
            for mapping in mappings
            if mapping.schema_field is not None
        }

        rows: list[CaseRow] = []
        for index, record in enumerate(records):
            row = CaseRow(row_id=f"row-{index}")
            for column, raw_value in record.items():
                value = "" if raw_value is None else str(raw_value)
                schema_field = field_by_column.get(column)
                if schema_field is None:
                    row.extras[column] = value
                    continue
                row.set(schema_field, self._coerce_value(schema_field, value))
            rows.append(row)
        return rows

    def _best_proposal(self, position: int, header: str) -> _Proposal:
        if not normalize_token(header):
            return _Proposal(position=position, source_column=header, schema_field=None, confidence=0.0)

        best_field: str | None = None
        best_score = 0.0
        for item in self._schema_fields:
            for candidate in (item.name, item.label, *item.aliases):
                score = similarity(header, candidate)
                if score > best_score:
                    best_score = score
                    best_field = item.name

        if best_field is None or best_score < self._threshold:
            return _Proposal(position=position, source_column=header, schema_field=None, confidence=0.0)
        return _Proposal(position=position, source_column=header, schema_field=best_field, confidence=best_score)

    @staticmethod
    def _coerce_value(schema_field: str, value: str) -> str:
        enum_cls = _ENUM_FIELDS.get(schema_field)
        if enum_cls is None or not value.strip():
            return value
        parsed = parse_enum(enum_cls, value)
        if parsed.ok:
            return parsed.value.value
        return parsed.original
