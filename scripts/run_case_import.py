"""
Run a case import from CLI: map, validate and submit a CSV in chunks.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from app.config import get_import_store_client_settings
from app.connectors.import_store_client import HTTPImportStore
from app.validators.mapping_validator import SchemaMappingError
from app.services.batch_submission import PROVISIONAL_ERROR_CODES, BatchSubmissionCoordinator
from app.services.error_report import render_error_report_csv
from app.services.import_job_service import LocalImportStore
from app.services.import_session import ImportSession
from db.repositories.errors import ImportJobError


def _parse_pairs(values: list[str], *, separator: str, option: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for value in values:
        left, sep, right = value.partition(separator)
        if not sep or not left.strip():
            raise SystemExit(f"{option} expects LEFT{separator}RIGHT, got {value!r}")
        pairs.append((left.strip(), right.strip()))
    return pairs


def _build_store(args: argparse.Namespace) -> LocalImportStore | HTTPImportStore:
    if args.local:
        return LocalImportStore()
    settings = get_import_store_client_settings()
    if args.base_url:
        settings = replace(settings, base_url=args.base_url.rstrip("/"))
    return HTTPImportStore(user_id=args.user_id, settings=settings)


def main() -> int:
    parser = argparse.ArgumentParser(description="Import cases from a CSV file.")
    parser.add_argument("csv_path", type=Path, help="CSV file to import.")
    parser.add_argument("--user-id", default=os.getenv("CASE_IMPORT_USER_ID", "cli"), help="Importing user id.")
    parser.add_argument("--base-url", default=None, help="Import store base URL (defaults to IMPORT_STORE_BASE_URL).")
    parser.add_argument("--local", action="store_true", help="Write directly to the configured database.")
    parser.add_argument("--chunk-size", type=int, default=None, help="Rows per chunk.")
    parser.add_argument(
        "--map",
        dest="overrides",
        action="append",
        default=[],
        metavar="COLUMN=FIELD",
        help="Override a column mapping; empty FIELD unmaps the column.",
    )
    parser.add_argument(
        "--fix",
        dest="fixes",
        action="append",
        default=[],
        metavar="FIELD:FIX",
        help="Apply a fix helper to a field before validation (e.g. phone:normalize_phone).",
    )
    parser.add_argument("--force", action="store_true", help="Proceed even if required fields are unmapped.")
    parser.add_argument("--attach", default=None, metavar="JOB_ID", help="Continue an existing job.")
    parser.add_argument("--error-report", type=Path, default=None, help="Write failed rows to this CSV file.")
    parser.add_argument("--dry-run", action="store_true", help="Validate only; do not submit.")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    session = ImportSession.from_csv(file_name=args.csv_path.name, content=args.csv_path.read_bytes())
    for column, field_name in _parse_pairs(args.overrides, separator="=", option="--map"):
        session.override_mapping(column, field_name or None)

    try:
        session.apply_mapping(force=args.force)
    except SchemaMappingError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 2

    for field_name, fix_name in _parse_pairs(args.fixes, separator=":", option="--fix"):
        session.apply_fix(field_name, fix_name)

    session.validate()
    summary = session.summary()
    rows = session.submission_rows()
    payload: dict[str, object] = {
        "file_name": session.file_name,
        "total_rows": summary.total_rows,
        "valid_rows": summary.valid_rows,
        "invalid_rows": summary.invalid_rows,
        "top_errors": summary.top_errors,
    }

    if args.dry_run or not rows:
        print(json.dumps(payload, indent=2))
        return 0 if rows or args.dry_run else 1

    store = _build_store(args)
    coordinator = BatchSubmissionCoordinator(store, chunk_size=args.chunk_size, user_id=args.user_id)
    if args.attach:
        coordinator.attach(args.attach, rows, session.row_states, resume=True)
    else:
        coordinator.start(session.file_name, rows, session.row_states)
    try:
        progress = coordinator.run()
    except ImportJobError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        progress = coordinator.progress

    payload.update(
        {
            "job_id": progress.job_id,
            "state": coordinator.state.value,
            "processed_rows": progress.processed_rows,
            "success_count": progress.success_count,
            "failed_count": progress.failed_count,
            "last_processed_index": progress.last_processed_index,
        }
    )
    if args.error_report is not None:
        # Store report covers earlier sessions; unconfirmed chunks exist only locally.
        errors = store.get_error_report(progress.job_id)
        errors.extend(error.to_dict() for error in progress.errors if error.code in PROVISIONAL_ERROR_CODES)
        args.error_report.write_text(render_error_report_csv(errors), encoding="utf-8")
        payload["error_report"] = str(args.error_report)

    print(json.dumps(payload, indent=2))
    return 0 if coordinator.state.value == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
