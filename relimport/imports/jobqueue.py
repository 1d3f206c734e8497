"""
F14 - Database-backed queue that hands confirmed imports to the worker.

Entries are written in the same transaction as the state change that
requires them, so a committed confirmation always has its queue entry.

Delivery is at-least-once: a worker that dies while holding an entry
leaves it locked, and the lock is reclaimed after
``IMPORT_QUEUE_LOCK_TIMEOUT`` seconds.  Consumers must tolerate seeing the
same import twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from relimport import db
from relimport.models import ImportQueueEntry

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enqueue_import(import_id: int) -> ImportQueueEntry:
    """Add a queue entry for *import_id* to the current session (no commit)."""
    entry = ImportQueueEntry(bulk_import_id=import_id, available_at=_utcnow())
    db.session.add(entry)
    return entry


def claim_next_entry() -> ImportQueueEntry | None:
    """Lock and return the oldest deliverable entry, or None if there is none.

    The lock is taken with a conditional UPDATE so concurrent workers never
    claim the same entry.  Commits.
    """
    now = _utcnow()
    stale_before = now - timedelta(
        seconds=current_app.config.get("IMPORT_QUEUE_LOCK_TIMEOUT", 3600)
    )
    claimable = db.or_(
        ImportQueueEntry.locked_at.is_(None),
        ImportQueueEntry.locked_at < stale_before,
    )

    candidate_ids = (
        db.session.execute(
            db.select(ImportQueueEntry.id)
            .where(
                ImportQueueEntry.dead_at.is_(None),
                ImportQueueEntry.available_at <= now,
                claimable,
            )
            .order_by(ImportQueueEntry.id)
            .limit(5)
        )
        .scalars()
        .all()
    )

    for entry_id in candidate_ids:
        result = db.session.execute(
            db.update(ImportQueueEntry)
            .where(ImportQueueEntry.id == entry_id, claimable)
            .values(locked_at=now, attempts=ImportQueueEntry.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.session.commit()
            entry = db.session.get(ImportQueueEntry, entry_id)
            logger.debug(
                "Claimed queue entry %d for import %d (attempt %d)",
                entry.id,
                entry.bulk_import_id,
                entry.attempts,
            )
            return entry

    db.session.commit()
    return None


def complete_entry(entry_id: int) -> None:
    """Remove a successfully handled entry.  Commits."""
    db.session.execute(db.delete(ImportQueueEntry).where(ImportQueueEntry.id == entry_id))
    db.session.commit()


def fail_entry(entry_id: int, error: str) -> ImportQueueEntry | None:
    """Release a failed entry for a later retry, or bury it.

    Retries back off linearly (``attempts * IMPORT_QUEUE_RETRY_DELAY``
    seconds).  After ``IMPORT_QUEUE_MAX_ATTEMPTS`` attempts the entry is
    marked dead and kept for inspection.  Commits.
    """
    entry = db.session.get(ImportQueueEntry, entry_id)
    if entry is None:
        return None

    config = current_app.config
    max_attempts = config.get("IMPORT_QUEUE_MAX_ATTEMPTS", 5)
    now = _utcnow()

    entry.locked_at = None
    entry.last_error = error[:_MAX_ERROR_LENGTH]
    if entry.attempts >= max_attempts:
        entry.dead_at = now
        logger.error(
            "Queue entry %d for import %d gave up after %d attempts: %s",
            entry.id,
            entry.bulk_import_id,
            entry.attempts,
            error,
        )
    else:
        delay = config.get("IMPORT_QUEUE_RETRY_DELAY", 30) * entry.attempts
        entry.available_at = now + timedelta(seconds=delay)
        logger.warning(
            "Queue entry %d for import %d failed (attempt %d/%d), retrying in %ds: %s",
            entry.id,
            entry.bulk_import_id,
            entry.attempts,
            max_attempts,
            delay,
            error,
        )
    db.session.commit()
    return entry


def pending_count() -> int:
    """Number of live (not dead) entries."""
    return db.session.execute(
        db.select(db.func.count(ImportQueueEntry.id)).where(ImportQueueEntry.dead_at.is_(None))
    ).scalar_one()
