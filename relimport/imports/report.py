"""
F17 - Failure reports for finished imports.

Rows that were not imported are written back out in the same shape as
the uploaded file, so the owner can fix them and upload the report again.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from relimport import db
from relimport.imports.codec import get_codec
from relimport.imports.errors import UnsupportedReportFormat
from relimport.imports.service import find_owned_import
from relimport.models import Account, BulkImport, BulkImportRow

logger = logging.getLogger(__name__)

REPORT_FORMATS: dict[str, str] = {
    "csv": "text/csv",
    "json": "application/json",
}


@dataclass(frozen=True)
class FailureReport:
    body: str
    mimetype: str
    filename: str


def failed_rows(bulk_import: BulkImport) -> list[BulkImportRow]:
    """Rows of *bulk_import* that were not imported, in file order."""
    return list(
        db.session.execute(
            db.select(BulkImportRow)
            .where(
                BulkImportRow.bulk_import_id == bulk_import.id,
                BulkImportRow.outcome != "imported",
            )
            .order_by(BulkImportRow.id)
        )
        .scalars()
        .all()
    )


def build_failure_report(bulk_import: BulkImport, fmt: str = "csv") -> FailureReport:
    """Render the failed rows of *bulk_import* as *fmt*.

    Raises:
        UnsupportedReportFormat: If *fmt* is not one of ``REPORT_FORMATS``.
    """
    if fmt not in REPORT_FORMATS:
        raise UnsupportedReportFormat(f"Unsupported report format: {fmt!r}")

    codec = get_codec(bulk_import.type)
    rows = failed_rows(bulk_import)

    if fmt == "csv":
        body = codec.encode_rows(row.get_data() for row in rows)
    else:
        records = []
        for row in rows:
            record = dict(zip(codec.headers, codec.encode(row.get_data())))
            record["failure_reason"] = row.failure_reason
            records.append(record)
        body = json.dumps(records, ensure_ascii=False, indent=2)

    return FailureReport(
        body=body,
        mimetype=REPORT_FORMATS[fmt],
        filename=f"{bulk_import.type}_failures.{fmt}",
    )


def export_failures(owner: Account, import_id: int, fmt: str = "csv") -> FailureReport:
    """Failure report for one of *owner*'s finished imports.

    Raises:
        ImportNotFound: If *owner* has no finished import *import_id*.
        UnsupportedReportFormat: If *fmt* is not supported.
    """
    bulk_import = find_owned_import(owner, import_id, ("finished",))
    report = build_failure_report(bulk_import, fmt)
    logger.info(
        "Failure report exported: import=%d account=%d format=%s",
        import_id,
        owner.id,
        fmt,
    )
    return report
