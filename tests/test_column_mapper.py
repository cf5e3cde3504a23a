from __future__ import annotations

import unittest

from app.domain.case_import import ColumnMapping
from app.mappers.column_mapper import ColumnMapper, normalize_header
from app.validators.mapping_validator import SchemaMappingError


class TestColumnMapper(unittest.TestCase):
    def setUp(self) -> None:
        self.mapper = ColumnMapper()

    def test_auto_maps_known_headers(self) -> None:
        headers = ["case_id", "name", "date_of_birth", "email_address", "phone", "category", "priority"]

        mappings = self.mapper.auto_map(headers)

        self.assertEqual([mapping.source_column for mapping in mappings], headers)
        self.assertEqual(
            [mapping.schema_field for mapping in mappings],
            ["case_id", "applicant_name", "dob", "email", "phone", "category", "priority"],
        )
        self.assertTrue(all(mapping.is_auto_assigned for mapping in mappings))
        self.assertEqual(self.mapper.get_unmapped_required_fields(mappings), [])

    def test_auto_detects_misspelled_headers(self) -> None:
        mappings = self.mapper.auto_map(["dat_of_birth", "applicant_nmae"])

        self.assertEqual(mappings[0].schema_field, "dob")
        self.assertEqual(mappings[1].schema_field, "applicant_name")
        self.assertLess(mappings[1].confidence, 1.0)

    def test_field_is_claimed_once_by_first_best_header(self) -> None:
        mappings = self.mapper.auto_map(["email", "email_address", "notes_zzqx"])

        self.assertEqual(len(mappings), 3)
        self.assertEqual(mappings[0].schema_field, "email")
        self.assertIsNone(mappings[1].schema_field)
        self.assertEqual(mappings[1].confidence, 0.0)
        self.assertIsNone(mappings[2].schema_field)

        assigned = [mapping.schema_field for mapping in mappings if mapping.schema_field]
        self.assertEqual(len(assigned), len(set(assigned)))

    def test_blank_header_is_never_mapped(self) -> None:
        mappings = self.mapper.auto_map(["", "case_id"])

        self.assertIsNone(mappings[0].schema_field)
        self.assertEqual(mappings[1].schema_field, "case_id")

    def test_unmapped_required_fields_are_reported_by_label(self) -> None:
        mappings = self.mapper.auto_map(["case_id", "email"])

        self.assertEqual(
            self.mapper.get_unmapped_required_fields(mappings),
            ["Applicant Name", "Date of Birth", "Category"],
        )

    def test_override_takes_field_from_previous_holder(self) -> None:
        mappings = self.mapper.auto_map(["case_id", "reference"])
        self.assertEqual(mappings[0].schema_field, "case_id")

        updated = self.mapper.override_mapping(mappings, source_column="reference", schema_field="case_id")

        self.assertIsNone(updated[0].schema_field)
        self.assertEqual(updated[0].confidence, 0.0)
        self.assertEqual(updated[1].schema_field, "case_id")
        self.assertEqual(updated[1].confidence, 1.0)
        self.assertFalse(updated[1].is_auto_assigned)

    def test_override_to_none_clears_mapping(self) -> None:
        mappings = self.mapper.auto_map(["case_id"])

        updated = self.mapper.override_mapping(mappings, source_column="case_id", schema_field=None)

        self.assertEqual(updated, [ColumnMapping(source_column="case_id")])

    def test_override_rejects_unknown_field_and_column(self) -> None:
        mappings = self.mapper.auto_map(["case_id"])

        with self.assertRaises(SchemaMappingError) as ctx:
            self.mapper.override_mapping(mappings, source_column="missing", schema_field="nickname")

        codes = {error.code for error in ctx.exception.errors}
        self.assertEqual(codes, {"unknown_schema_field", "unknown_source_column"})

    def test_apply_mapping_builds_rows_and_keeps_extras(self) -> None:
        mappings = self.mapper.auto_map(["case_id", "name", "category", "priority", "notes_zzqx"])
        records = [
            {"case_id": "C-1", "name": "Ann", "category": " tax ", "priority": "high", "notes_zzqx": "vip"},
            {"case_id": "C-2", "name": "Bob", "category": "other", "priority": "", "notes_zzqx": ""},
        ]

        rows = self.mapper.apply_mapping(records, mappings)

        self.assertEqual([row.row_id for row in rows], ["row-0", "row-1"])
        self.assertEqual(rows[0].applicant_name, "Ann")
        self.assertEqual(rows[0].category, "TAX")
        self.assertEqual(rows[0].priority, "HIGH")
        self.assertEqual(rows[0].extras, {"notes_zzqx": "vip"})
        self.assertEqual(rows[1].category, "other")
        self.assertEqual(rows[1].priority, "")
        self.assertEqual(rows[1].effective_priority(), "LOW")

    def test_threshold_cannot_be_lowered(self) -> None:
        lenient = ColumnMapper(threshold=0.1)

        self.assertEqual(
            lenient.auto_map(["abc"]),
            self.mapper.auto_map(["abc"]),
        )

    def test_confidence_levels(self) -> None:
        self.assertEqual(ColumnMapping(source_column="a", confidence=0.95).confidence_level, "high")
        self.assertEqual(ColumnMapping(source_column="a", confidence=0.75).confidence_level, "medium")
        self.assertEqual(ColumnMapping(source_column="a", confidence=0.61).confidence_level, "low")

    def test_normalize_header(self) -> None:
        self.assertEqual(normalize_header("  Date of   Birth "), "date_of_birth")


if __name__ == "__main__":
    unittest.main()
