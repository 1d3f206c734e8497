"""
F16 - Queue consumer that runs confirmed imports.

Claims queue entries and hands each import id to ``process_import``.
With a concurrency of one entries are handled in the calling thread;
otherwise each runs in a thread pool worker inside its own Flask
application context so database sessions are scoped per thread.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from flask import current_app

from relimport import db
from relimport.imports.jobqueue import claim_next_entry, complete_entry, fail_entry
from relimport.imports.processor import process_import

logger = logging.getLogger(__name__)


def _run_entry(entry_id: int, import_id: int) -> bool:
    """Process one claimed entry; returns True when the entry is completed."""
    try:
        process_import(import_id)
    except Exception as exc:
        db.session.rollback()
        logger.exception("Import %d failed in worker: %s", import_id, exc)
        fail_entry(entry_id, f"{type(exc).__name__}: {exc}")
        return False
    complete_entry(entry_id)
    return True


def _claim_batch(limit: int) -> list[tuple[int, int]]:
    claimed: list[tuple[int, int]] = []
    while len(claimed) < limit:
        entry = claim_next_entry()
        if entry is None:
            break
        claimed.append((entry.id, entry.bulk_import_id))
    return claimed


def run_pending_imports(
    max_jobs: int | None = None,
    concurrency: int | None = None,
) -> dict[str, int]:
    """Drain deliverable queue entries.

    Args:
        max_jobs: Stop after claiming this many entries (default: no limit).
        concurrency: Imports run in parallel (default:
            ``IMPORT_WORKER_CONCURRENCY``).

    Returns:
        Counts of ``claimed``, ``completed`` and ``failed`` entries.
    """
    if concurrency is None:
        concurrency = current_app.config.get("IMPORT_WORKER_CONCURRENCY", 2)
    concurrency = max(1, concurrency)

    stats = {"claimed": 0, "completed": 0, "failed": 0}

    while max_jobs is None or stats["claimed"] < max_jobs:
        batch_size = concurrency
        if max_jobs is not None:
            batch_size = min(batch_size, max_jobs - stats["claimed"])
        batch = _claim_batch(batch_size)
        # Release this session's transaction before other threads write.
        db.session.commit()
        if not batch:
            break
        stats["claimed"] += len(batch)

        if concurrency == 1:
            outcomes = [_run_entry(entry_id, import_id) for entry_id, import_id in batch]
        else:
            outcomes = _run_concurrent(batch, concurrency)

        completed = sum(1 for ok in outcomes if ok)
        stats["completed"] += completed
        stats["failed"] += len(outcomes) - completed

    if stats["claimed"]:
        logger.info(
            "Worker pass complete: claimed=%d completed=%d failed=%d (concurrency=%d)",
            stats["claimed"],
            stats["completed"],
            stats["failed"],
            concurrency,
        )
    return stats


def _run_concurrent(batch: list[tuple[int, int]], concurrency: int) -> list[bool]:
    app = current_app._get_current_object()  # real app, not proxy

    def _run_one(entry_id: int, import_id: int) -> bool:
        with app.app_context():
            return _run_entry(entry_id, import_id)

    outcomes: list[bool] = []
    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        futures = [
            executor.submit(_run_one, entry_id, import_id) for entry_id, import_id in batch
        ]
        for future in as_completed(futures):
            outcomes.append(future.result())
    return outcomes
