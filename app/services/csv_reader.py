"""
app/services/csv_reader.py

Parsing of uploaded delimited files into header-normalized records.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field

from app.mappers.column_mapper import normalize_header


class CSVHeaderValidationError(ValueError):
    """
    Raised when CSV shape/header validation fails.
    """


@dataclass(frozen=True)
class ParsedCSV:
    """
    Header line plus data records keyed by normalized header.
    """

    headers: tuple[str, ...]
    records: list[dict[str, str]] = field(default_factory=list)


def read_csv_bytes(content: bytes) -> ParsedCSV:
    """
    Decode UTF-8 (BOM tolerated) bytes and parse them.
    """

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CSVHeaderValidationError("CSV must be UTF-8 encoded.") from exc
    return read_csv_text(text)


def read_csv_text(text: str) -> ParsedCSV:
    """
    Parse CSV text whose first row is the header line.

    Headers are trimmed, lowercased and have whitespace runs replaced by
    underscores. Completely empty lines are skipped.
    """

    try:
        reader = csv.reader(io.StringIO(text, newline=""))
        raw_headers = next(reader, None)
        if not raw_headers or all(not header.strip() for header in raw_headers):
            raise CSVHeaderValidationError("CSV header row is missing.")

        headers = _dedupe_headers([normalize_header(header) for header in raw_headers])
        records: list[dict[str, str]] = []
        for values in reader:
            if all(not value.strip() for value in values):
                continue
            record = {
                header: values[position] if position < len(values) else ""
                for position, header in enumerate(headers)
            }
            records.append(record)
    except csv.Error as exc:
        raise CSVHeaderValidationError(f"Invalid CSV format: {exc}") from exc

    return ParsedCSV(headers=tuple(headers), records=records)


def _dedupe_headers(headers: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    unique: list[str] = []
    for header in headers:
        count = seen.get(header, 0)
        seen[header] = count + 1
        unique.append(header if count == 0 else f"{header}_{count + 1}")
    return unique
