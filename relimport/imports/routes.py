"""
F19 - Imports blueprint routes.

JSON endpoints for uploading, reviewing, confirming and deleting imports,
and for downloading the rows of a finished import that failed.

An import that is missing, owned by another account, or in the wrong
state for the request answers 404 in every case.

Security controls:
- Only .txt and .csv uploads are accepted (ImportForm).
- Upload size is capped by MAX_CONTENT_LENGTH and IMPORT_FILE_SIZE_LIMIT.
- The uploaded filename is only stored for display, never used as a path.
- POSTs need the session CSRF token in an X-CSRFToken header; the list
  and review responses carry it as ``csrf_token``.
"""

from __future__ import annotations

import logging

from flask import Response, jsonify, redirect, request, url_for
from flask_login import current_user
from flask_wtf.csrf import CSRFError, generate_csrf
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from relimport.imports import bp
from relimport.imports.errors import (
    ImportNotFound,
    ImportValidationError,
    UnsupportedReportFormat,
)
from relimport.imports.forms import ImportForm
from relimport.imports.report import REPORT_FORMATS, export_failures
from relimport.imports.service import (
    confirm_import,
    create_import,
    destroy_import,
    get_import,
    list_recent_imports,
    preview_rows,
)
from relimport.models import BulkImport
from relimport.utils.auth import auth_required

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _serialize_import(bulk_import: BulkImport) -> dict:
    return {
        "id": bulk_import.id,
        "type": bulk_import.type,
        "mode": bulk_import.mode,
        "state": bulk_import.state,
        "total_items": bulk_import.total_items,
        "processed_items": bulk_import.processed_items,
        "imported_items": bulk_import.imported_items,
        "dropped_items": bulk_import.dropped_items,
        "progress": bulk_import.progress,
        "original_filename": bulk_import.original_filename,
        "likely_mismatched": bulk_import.likely_mismatched,
        "created_at": bulk_import.created_at.isoformat() if bulk_import.created_at else None,
        "started_at": bulk_import.started_at.isoformat() if bulk_import.started_at else None,
        "finished_at": bulk_import.finished_at.isoformat() if bulk_import.finished_at else None,
    }


@bp.errorhandler(ImportNotFound)
def import_not_found(exc: ImportNotFound):
    return jsonify({"error": "Import not found"}), 404


@bp.errorhandler(CSRFError)
def csrf_error(exc: CSRFError):
    return jsonify({"error": exc.description}), 400


@bp.errorhandler(RequestEntityTooLarge)
def upload_too_large(exc: RequestEntityTooLarge):
    return jsonify({"errors": {"file": ["The file is too large."]}}), 413


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@bp.route("/", methods=["GET"])
@auth_required
def index():
    """List the current account's most recent imports."""
    imports = list_recent_imports(current_user)
    response = jsonify(
        {
            "imports": [_serialize_import(i) for i in imports],
            "csrf_token": generate_csrf(),
        }
    )
    response.headers["Cache-Control"] = "private, no-store"
    return response


@bp.route("/", methods=["POST"])
@auth_required
def create():
    """Upload a file; on success redirect to its review page."""
    form = ImportForm()
    if form.validate_on_submit():
        upload = form.file.data
        try:
            bulk_import = create_import(
                current_user,
                form.kind.data,
                form.mode.data,
                upload.stream,
                filename=secure_filename(upload.filename or ""),
            )
        except ImportValidationError as exc:
            form.file.errors.append(str(exc))
        else:
            return redirect(url_for("imports.show", import_id=bulk_import.id))

    logger.info("Import upload rejected for account %d: %s", current_user.id, form.errors)
    return jsonify({"errors": form.errors}), 422


# ---------------------------------------------------------------------------
# Single import
# ---------------------------------------------------------------------------


@bp.route("/<int:import_id>", methods=["GET"])
@auth_required
def show(import_id: int):
    """Review an unconfirmed import before confirming it."""
    bulk_import = get_import(current_user, import_id)
    payload = _serialize_import(bulk_import)
    payload["preview"] = preview_rows(bulk_import)
    payload["csrf_token"] = generate_csrf()
    if bulk_import.likely_mismatched:
        payload["warning"] = (
            "This file does not look like a "
            f"{bulk_import.type.replace('_', ' ')} export. Check the import type before confirming."
        )
    return jsonify(payload)


@bp.route("/<int:import_id>/confirm", methods=["POST"])
@auth_required
def confirm(import_id: int):
    confirm_import(current_user, import_id)
    return redirect(url_for("imports.index"))


@bp.route("/<int:import_id>/delete", methods=["POST"])
@auth_required
def delete(import_id: int):
    destroy_import(current_user, import_id)
    return redirect(url_for("imports.index"))


@bp.route("/<int:import_id>/failures", methods=["GET"])
@auth_required
def failures(import_id: int):
    """Download the rows of a finished import that were not imported."""
    fmt = request.args.get("format", "csv").lower()
    try:
        report = export_failures(current_user, import_id, fmt)
    except UnsupportedReportFormat:
        return (
            jsonify(
                {
                    "error": f"Unsupported format: {fmt}",
                    "supported": sorted(REPORT_FORMATS),
                }
            ),
            406,
        )

    return Response(
        report.body,
        mimetype=report.mimetype,
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )
