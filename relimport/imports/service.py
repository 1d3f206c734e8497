"""
F13 - Import lifecycle: create, review, confirm, destroy.

Every operation is scoped to the owning account.  An import that belongs
to someone else, or that is no longer in the state an operation needs,
raises :class:`ImportNotFound` exactly as a missing one would.

State machine::

    unconfirmed --confirm--> scheduled --worker--> in_progress --worker--> finished

``unconfirmed`` is the only state in which an import can be shown for
review, confirmed or destroyed.  Nothing ever moves an import backwards.
"""

from __future__ import annotations

import logging
from typing import IO, Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from relimport import db
from relimport.imports.errors import ImportNotFound, ImportValidationError
from relimport.imports.jobqueue import enqueue_import
from relimport.imports.parser import parse_import_file
from relimport.models import (
    IMPORT_KINDS,
    IMPORT_MODES,
    IMPORT_STATES,
    Account,
    BulkImport,
    BulkImportRow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def find_owned_import(
    owner: Account,
    import_id: int,
    states: tuple[str, ...] | None = None,
) -> BulkImport:
    """Return *owner*'s import *import_id*, optionally restricted to *states*.

    Raises:
        ImportNotFound: If there is no such import for *owner* in *states*.
    """
    query = db.select(BulkImport).where(
        BulkImport.id == import_id, BulkImport.account_id == owner.id
    )
    if states:
        query = query.where(BulkImport.state.in_(states))
    bulk_import = db.session.execute(query).scalars().first()
    if bulk_import is None:
        raise ImportNotFound(import_id)
    return bulk_import


def list_recent_imports(owner: Account, limit: int | None = None) -> list[BulkImport]:
    """Return *owner*'s most recent imports, newest first."""
    if limit is None:
        limit = current_app.config.get("IMPORT_RECENT_LIMIT", 10)
    return list(
        db.session.execute(
            db.select(BulkImport)
            .where(BulkImport.account_id == owner.id)
            .order_by(BulkImport.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def get_import(owner: Account, import_id: int) -> BulkImport:
    """Return an import awaiting review."""
    return find_owned_import(owner, import_id, ("unconfirmed",))


def preview_rows(bulk_import: BulkImport, limit: int | None = None) -> list[dict[str, Any]]:
    """Return the first decoded payloads of *bulk_import* for review."""
    if limit is None:
        limit = current_app.config.get("IMPORT_PREVIEW_ROWS", 20)
    rows = (
        db.session.execute(
            db.select(BulkImportRow)
            .where(BulkImportRow.bulk_import_id == bulk_import.id)
            .order_by(BulkImportRow.id)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return [row.get_data() for row in rows]


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------


def transition_state(
    import_id: int,
    from_state: str,
    to_state: str,
    *,
    account_id: int | None = None,
    **values: Any,
) -> bool:
    """Move an import one step forward, only if it is still in *from_state*.

    The check and the write are a single UPDATE, so when two callers race
    for the same transition exactly one of them wins.  Does not commit.

    Returns:
        True if this call performed the transition.
    """
    if IMPORT_STATES.index(to_state) != IMPORT_STATES.index(from_state) + 1:
        raise ValueError(f"Illegal import transition {from_state} -> {to_state}")

    stmt = db.update(BulkImport).where(
        BulkImport.id == import_id, BulkImport.state == from_state
    )
    if account_id is not None:
        stmt = stmt.where(BulkImport.account_id == account_id)
    result = db.session.execute(stmt.values(state=to_state, **values))
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def _read_upload(upload: IO[bytes] | bytes, limit: int) -> bytes:
    # Read one byte beyond the limit to detect oversized files without
    # buffering all of them.
    if isinstance(upload, (bytes, bytearray)):
        content = bytes(upload)
    else:
        content = upload.read(limit + 1)
    if len(content) > limit:
        raise ImportValidationError(
            f"The file is too large; the maximum size is {limit // (1024 * 1024) or 1} MB."
        )
    return content


def follow_limit_for(owner: Account, mode: str) -> int:
    """Number of follows a ``following`` import may contain for *owner*.

    Popular accounts get headroom proportional to their follower count.
    In merge mode existing follows count against the limit.
    """
    base_limit = current_app.config.get("IMPORT_FOLLOW_LIMIT", 7_500)
    limit = max(base_limit, int(owner.followers_count() * 1.1))
    if mode == "merge":
        limit -= owner.following_count()
    return max(limit, 0)


def create_import(
    owner: Account,
    kind: str,
    mode: str,
    upload: IO[bytes] | bytes,
    filename: str | None = None,
) -> BulkImport:
    """Validate an upload and store it as an unconfirmed import.

    The import and all of its rows are written in one transaction.

    Raises:
        ImportValidationError: If the upload cannot be imported as *kind*.
            Nothing is persisted in that case.
    """
    if kind not in IMPORT_KINDS:
        raise ImportValidationError(f"Unknown import type: {kind!r}")
    if mode not in IMPORT_MODES:
        raise ImportValidationError(f"Unknown import mode: {mode!r}")

    config = current_app.config
    content = _read_upload(upload, config.get("IMPORT_FILE_SIZE_LIMIT", 20 * 1024 * 1024))
    parsed = parse_import_file(
        kind,
        content,
        filename,
        max_rows=config.get("IMPORT_ROWS_LIMIT"),
    )

    if kind == "following":
        limit = follow_limit_for(owner, mode)
        if len(parsed.rows) > limit:
            raise ImportValidationError(
                f"You can't follow more than {limit} additional accounts."
            )

    bulk_import = BulkImport(
        account_id=owner.id,
        type=kind,
        mode=mode,
        state="unconfirmed",
        total_items=len(parsed.rows),
        dropped_items=parsed.dropped_rows,
        original_filename=(filename or "")[:255] or None,
        likely_mismatched=parsed.likely_mismatched,
    )
    for payload in parsed.rows:
        row = BulkImportRow()
        row.set_data(payload)
        bulk_import.rows.append(row)

    db.session.add(bulk_import)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to store import: account=%d kind=%s", owner.id, kind)
        raise

    logger.info(
        "Import created: id=%d account=%d kind=%s mode=%s rows=%d dropped=%d mismatched=%s",
        bulk_import.id,
        owner.id,
        kind,
        mode,
        bulk_import.total_items,
        bulk_import.dropped_items,
        bulk_import.likely_mismatched,
    )
    return bulk_import


# ---------------------------------------------------------------------------
# Confirm / destroy
# ---------------------------------------------------------------------------


def confirm_import(owner: Account, import_id: int) -> BulkImport:
    """Schedule an unconfirmed import for processing.

    The state change and the queue entry are committed together; the
    import is processed later by the worker.

    Raises:
        ImportNotFound: If *owner* has no unconfirmed import *import_id*.
    """
    if not transition_state(import_id, "unconfirmed", "scheduled", account_id=owner.id):
        db.session.rollback()
        raise ImportNotFound(import_id)

    enqueue_import(import_id)
    db.session.commit()

    logger.info("Import confirmed: id=%d account=%d", import_id, owner.id)
    return db.session.get(BulkImport, import_id)


def destroy_import(owner: Account, import_id: int) -> None:
    """Delete an unconfirmed import and its rows.

    Raises:
        ImportNotFound: If *owner* has no unconfirmed import *import_id*.
    """
    bulk_import = find_owned_import(owner, import_id, ("unconfirmed",))
    db.session.delete(bulk_import)
    db.session.commit()
    logger.info("Import destroyed: id=%d account=%d", import_id, owner.id)
