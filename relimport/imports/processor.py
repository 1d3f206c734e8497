"""
F15 - Row processor: applies a scheduled import to the owner's account.

``process_import`` is the only code that moves an import out of
``scheduled``.  It wins the ``scheduled -> in_progress`` transition with a
conditional UPDATE, so a redelivered queue entry for an import that is
already running or finished does nothing.

Rows are applied one at a time, in file order, each inside a savepoint.
A row that cannot be applied is marked ``failed`` with a reason and the
import carries on.  Progress counters are committed after every row so
the review page can show a live snapshot.

In overwrite mode, existing relationships of the import's kind that the
file does not mention are removed once all rows have been applied.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Hashable

from sqlalchemy.exc import IntegrityError, OperationalError

from relimport import db, relationships
from relimport.imports.codec import get_codec
from relimport.imports.errors import ProcessorRetryableFailure, RowFailure
from relimport.imports.service import transition_state
from relimport.models import (
    Account,
    AccountDomainBlock,
    AccountList,
    Block,
    Bookmark,
    BulkImport,
    BulkImportRow,
    Follow,
    Mute,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Per-kind handlers
# ---------------------------------------------------------------------------


class ImportHandler:
    """Applies rows of one import kind and prunes for overwrite mode."""

    kind: str = ""

    def apply(self, account: Account, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    def identity(self, payload: dict[str, Any]) -> Hashable | None:
        """Key used to decide what overwrite mode keeps; None if unusable."""
        raise NotImplementedError

    def prune(self, account: Account, keep: set) -> int:
        """Remove *account*'s existing relationships not in *keep*."""
        raise NotImplementedError


class FollowingHandler(ImportHandler):
    kind = "following"

    def apply(self, account, payload):
        target = relationships.resolve_account(payload["acct"])
        relationships.follow(
            account,
            target,
            show_reblogs=payload["show_reblogs"],
            notify=payload["notify"],
            languages=payload["languages"],
        )

    def identity(self, payload):
        return relationships.normalize_acct(payload["acct"])

    def prune(self, account, keep):
        removed = 0
        follows = db.session.execute(
            db.select(Follow).where(Follow.account_id == account.id)
        ).scalars().all()
        for existing in follows:
            target = existing.target_account
            if relationships.normalize_acct(target.acct) not in keep:
                relationships.unfollow(account, target)
                removed += 1
        return removed


class BlockingHandler(ImportHandler):
    kind = "blocking"

    def apply(self, account, payload):
        relationships.block(account, relationships.resolve_account(payload["acct"]))

    def identity(self, payload):
        return relationships.normalize_acct(payload["acct"])

    def prune(self, account, keep):
        removed = 0
        blocks = db.session.execute(
            db.select(Block).where(Block.account_id == account.id)
        ).scalars().all()
        for existing in blocks:
            target = existing.target_account
            if relationships.normalize_acct(target.acct) not in keep:
                relationships.unblock(account, target)
                removed += 1
        return removed


class MutingHandler(ImportHandler):
    kind = "muting"

    def apply(self, account, payload):
        relationships.mute(
            account,
            relationships.resolve_account(payload["acct"]),
            hide_notifications=payload["hide_notifications"],
        )

    def identity(self, payload):
        return relationships.normalize_acct(payload["acct"])

    def prune(self, account, keep):
        removed = 0
        mutes = db.session.execute(
            db.select(Mute).where(Mute.account_id == account.id)
        ).scalars().all()
        for existing in mutes:
            target = existing.target_account
            if relationships.normalize_acct(target.acct) not in keep:
                relationships.unmute(account, target)
                removed += 1
        return removed


class DomainBlockingHandler(ImportHandler):
    kind = "domain_blocking"

    def apply(self, account, payload):
        relationships.block_domain(account, payload["domain"])

    def identity(self, payload):
        try:
            return relationships.normalize_domain(payload["domain"])
        except RowFailure:
            return None

    def prune(self, account, keep):
        removed = 0
        domain_blocks = db.session.execute(
            db.select(AccountDomainBlock).where(AccountDomainBlock.account_id == account.id)
        ).scalars().all()
        for existing in domain_blocks:
            if existing.domain not in keep:
                relationships.unblock_domain(account, existing.domain)
                removed += 1
        return removed


class BookmarksHandler(ImportHandler):
    kind = "bookmarks"

    def apply(self, account, payload):
        relationships.bookmark(account, payload["uri"])

    def identity(self, payload):
        return payload["uri"].strip()

    def prune(self, account, keep):
        removed = 0
        bookmarks = db.session.execute(
            db.select(Bookmark).where(Bookmark.account_id == account.id)
        ).scalars().all()
        for existing in bookmarks:
            if existing.status.uri not in keep:
                relationships.unbookmark(account, existing)
                removed += 1
        return removed


class ListsHandler(ImportHandler):
    kind = "lists"

    def apply(self, account, payload):
        target = relationships.resolve_account(payload["acct"])
        relationships.add_to_list(account, payload["list_name"], target)

    def identity(self, payload):
        return (payload["list_name"], relationships.normalize_acct(payload["acct"]))

    def prune(self, account, keep):
        titles = {title for title, _ in keep}
        removed = 0
        account_lists = db.session.execute(
            db.select(AccountList).where(AccountList.account_id == account.id)
        ).scalars().all()
        for account_list in account_lists:
            if account_list.title not in titles:
                removed += len(account_list.memberships)
                db.session.delete(account_list)
                continue
            for membership in list(account_list.memberships):
                key = (account_list.title, relationships.normalize_acct(membership.account.acct))
                if key not in keep:
                    account_list.memberships.remove(membership)
                    removed += 1
        db.session.flush()
        return removed


_HANDLERS: dict[str, ImportHandler] = {
    handler.kind: handler
    for handler in (
        FollowingHandler(),
        BlockingHandler(),
        MutingHandler(),
        DomainBlockingHandler(),
        BookmarksHandler(),
        ListsHandler(),
    )
}


def get_handler(kind: str) -> ImportHandler:
    """Return the handler for *kind*.

    Raises:
        ValueError: If *kind* is not a known import kind.
    """
    try:
        return _HANDLERS[kind]
    except KeyError:
        raise ValueError(f"Unknown import kind: {kind!r}") from None


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


def _start(import_id: int) -> bool:
    try:
        started = transition_state(import_id, "scheduled", "in_progress", started_at=_utcnow())
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        if "database is locked" in str(exc):
            raise ProcessorRetryableFailure(
                f"Database locked while starting import {import_id}"
            ) from exc
        raise
    return started


def _apply_row(
    handler: ImportHandler,
    account: Account,
    bulk_import: BulkImport,
    row: BulkImportRow,
    payload: dict[str, Any],
) -> bool:
    """Apply one row and record its outcome.  Commits."""
    failure_reason = None
    try:
        with db.session.begin_nested():
            handler.apply(account, payload)
    except RowFailure as exc:
        failure_reason = exc.reason
    except IntegrityError as exc:
        failure_reason = "conflicts with an existing relationship"
        logger.debug("Integrity error on import %d row %d: %s", bulk_import.id, row.id, exc)
    except OperationalError:
        raise
    except Exception as exc:
        failure_reason = f"unexpected error: {type(exc).__name__}"
        logger.exception("Unexpected error on import %d row %d", bulk_import.id, row.id)

    if failure_reason is None:
        row.outcome = "imported"
        row.failure_reason = None
        bulk_import.imported_items += 1
    else:
        row.outcome = "failed"
        row.failure_reason = failure_reason[:255]
        logger.debug(
            "Import %d row %d failed: %s", bulk_import.id, row.id, failure_reason
        )
    bulk_import.processed_items += 1
    db.session.commit()
    return failure_reason is None


def process_import(import_id: int) -> BulkImport | None:
    """Run a scheduled import to completion.

    Returns:
        The finished import, or None when the import was not ``scheduled``
        (already processed, in progress elsewhere, or gone).

    Raises:
        ProcessorRetryableFailure: If the database was too busy to start.
    """
    if not _start(import_id):
        logger.info("Import %d is not scheduled; nothing to do", import_id)
        return None

    bulk_import = db.session.get(BulkImport, import_id)
    account = bulk_import.account
    handler = get_handler(bulk_import.type)
    codec = get_codec(bulk_import.type)

    logger.info(
        "Processing import %d: account=%d kind=%s mode=%s rows=%d",
        bulk_import.id,
        account.id,
        bulk_import.type,
        bulk_import.mode,
        bulk_import.total_items,
    )

    keep: set = set()
    rows = db.session.execute(
        db.select(BulkImportRow)
        .where(BulkImportRow.bulk_import_id == import_id)
        .order_by(BulkImportRow.id)
    ).scalars().all()

    for row in rows:
        payload = codec.with_defaults(row.get_data())
        if bulk_import.overwrite:
            key = handler.identity(payload)
            if key is not None:
                keep.add(key)
        if row.outcome != "pending":
            continue
        _apply_row(handler, account, bulk_import, row, payload)

    if bulk_import.overwrite:
        removed = handler.prune(account, keep)
        logger.info("Import %d overwrite removed %d existing entries", import_id, removed)

    transition_state(import_id, "in_progress", "finished", finished_at=_utcnow())
    db.session.commit()

    bulk_import = db.session.get(BulkImport, import_id)
    logger.info(
        "Import %d finished: processed=%d imported=%d failed=%d",
        import_id,
        bulk_import.processed_items,
        bulk_import.imported_items,
        bulk_import.processed_items - bulk_import.imported_items,
    )
    return bulk_import
