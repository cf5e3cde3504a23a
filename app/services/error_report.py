"""
app/services/error_report.py

Downloadable error report for submission failures.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Mapping
from typing import Any

ERROR_REPORT_HEADERS: tuple[str, ...] = ("Row Index", "Identifier", "Error")


def render_error_report_csv(errors: Iterable[Mapping[str, Any]]) -> str:
    """
    Render recorded failures, in recorded order, as CSV text.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(ERROR_REPORT_HEADERS)
    for error in errors:
        writer.writerow(
            [
                str(error.get("index", "")),
                error.get("case_id") or "",
                error.get("message") or "",
            ]
        )
    return buffer.getvalue()
