"""
F16 - Tests for the queue consumer.

Most tests run against the shared in-memory database with a concurrency
of one.  The thread pool is exercised against a file-backed database,
since an in-memory SQLite database is a single shared connection.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from relimport import create_app
from relimport import db as _db
from relimport.imports import jobqueue, service
from relimport.imports.worker import run_pending_imports
from relimport.models import Account, Block, BulkImport, ImportQueueEntry


def _entries(db):
    return db.session.execute(db.select(ImportQueueEntry)).scalars().all()


def test_confirmed_import_is_processed_and_dequeued(db, alice, make_import):
    bulk_import = make_import(alice, "blocking", [{"acct": "bob"}, {"acct": "carol@remote.example"}])
    service.confirm_import(alice, bulk_import.id)

    stats = run_pending_imports()

    assert stats == {"claimed": 1, "completed": 1, "failed": 0}
    finished = db.session.get(BulkImport, bulk_import.id)
    assert finished.state == "finished"
    assert finished.imported_items == 2
    assert _entries(db) == []


def test_empty_queue_does_nothing(app):
    assert run_pending_imports() == {"claimed": 0, "completed": 0, "failed": 0}


def test_redelivered_entry_does_not_reapply_rows(db, alice, make_import):
    bulk_import = make_import(alice, "blocking", [{"acct": "bob"}])
    service.confirm_import(alice, bulk_import.id)
    jobqueue.enqueue_import(bulk_import.id)
    db.session.commit()

    stats = run_pending_imports()

    assert stats == {"claimed": 2, "completed": 2, "failed": 0}
    finished = db.session.get(BulkImport, bulk_import.id)
    assert finished.processed_items == 1
    assert len(db.session.execute(db.select(Block)).scalars().all()) == 1


def test_max_jobs_limits_a_pass(db, alice, make_import):
    for _ in range(3):
        bulk_import = make_import(alice, "blocking", [{"acct": "bob"}])
        service.confirm_import(alice, bulk_import.id)

    assert run_pending_imports(max_jobs=2)["claimed"] == 2
    assert len(_entries(db)) == 1


def test_failed_run_is_released_for_retry(db, alice, make_import):
    bulk_import = make_import(alice, "blocking", [{"acct": "bob"}])
    service.confirm_import(alice, bulk_import.id)

    with patch("relimport.imports.worker.process_import", side_effect=RuntimeError("boom")):
        stats = run_pending_imports()

    assert stats == {"claimed": 1, "completed": 0, "failed": 1}
    (entry,) = _entries(db)
    assert entry.attempts == 1
    assert entry.locked_at is None
    assert entry.last_error == "RuntimeError: boom"
    assert db.session.get(BulkImport, bulk_import.id).state == "scheduled"


# ---------------------------------------------------------------------------
# Thread pool
# ---------------------------------------------------------------------------


@pytest.fixture
def file_app(tmp_path):
    class FileConfig:
        TESTING = True
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'worker.db'}"
        SECRET_KEY = "test-secret-key-not-for-production"
        LOCAL_DOMAIN = "example.com"
        IMPORT_FOLLOW_LIMIT = 20
        IMPORT_WORKER_CONCURRENCY = 2

    flask_app = create_app(FileConfig)
    with flask_app.app_context():
        _db.create_all()
        _db.session.add_all([Account(username="alice"), Account(username="bob")])
        _db.session.commit()

        yield flask_app

        _db.session.remove()
        _db.drop_all()


def test_concurrent_pass_processes_every_import(file_app):
    owner = _db.session.execute(
        _db.select(Account).where(Account.username == "alice")
    ).scalar_one()
    import_ids = []
    for kind in ("blocking", "muting", "following"):
        bulk_import = service.create_import(owner, kind, "merge", b"bob\n")
        service.confirm_import(owner, bulk_import.id)
        import_ids.append(bulk_import.id)

    stats = run_pending_imports(concurrency=2)

    assert stats == {"claimed": 3, "completed": 3, "failed": 0}
    _db.session.expire_all()
    states = {_db.session.get(BulkImport, import_id).state for import_id in import_ids}
    assert states == {"finished"}
    assert _db.session.execute(_db.select(ImportQueueEntry)).scalars().all() == []
