"""
Shared pytest fixtures for the account relationship importer test suite.

All fixtures use an in-memory SQLite database so tests are fully
isolated and require no external services.
"""

from __future__ import annotations

import pytest
from flask_login import FlaskLoginClient

from relimport import create_app
from relimport import db as _db
from relimport.models import Account, BulkImport, BulkImportRow, Status


# ---------------------------------------------------------------------------
# Test configuration
# ---------------------------------------------------------------------------


class TestConfig:
    """Minimal Flask config for automated testing."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    SECRET_KEY = "test-secret-key-not-for-production"
    # NOTE: Do NOT set SERVER_NAME here; it causes 404s in the test client
    # because all routes would need the Host header to match exactly.
    LOCAL_DOMAIN = "example.com"

    IMPORT_FILE_SIZE_LIMIT = 64 * 1024
    MAX_CONTENT_LENGTH = 128 * 1024
    IMPORT_ROWS_LIMIT = 50
    IMPORT_FOLLOW_LIMIT = 20
    IMPORT_RECENT_LIMIT = 10
    IMPORT_PREVIEW_ROWS = 20
    IMPORT_WORKER_CONCURRENCY = 1
    IMPORT_QUEUE_MAX_ATTEMPTS = 3
    IMPORT_QUEUE_RETRY_DELAY = 30
    IMPORT_QUEUE_LOCK_TIMEOUT = 3600


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def app():
    """Create a Flask application instance backed by an in-memory database.

    A fresh database is created for every test function and torn down
    after the function completes.  Seeded data:

    - local accounts ``alice`` (the import owner) and ``bob``
    - remote accounts ``carol@remote.example``, ``dave@remote.example``
      and ``user@bar``
    - statuses ``https://foo.com/1`` and ``https://foo.com/2``
    """
    flask_app = create_app(TestConfig)
    flask_app.test_client_class = FlaskLoginClient

    with flask_app.app_context():
        _db.create_all()

        alice = Account(username="alice")
        bob = Account(username="bob")
        carol = Account(username="carol", domain="remote.example")
        dave = Account(username="dave", domain="remote.example")
        user_bar = Account(username="user", domain="bar")
        _db.session.add_all([alice, bob, carol, dave, user_bar])
        _db.session.flush()

        _db.session.add_all(
            [
                Status(uri="https://foo.com/1", account_id=carol.id),
                Status(uri="https://foo.com/2", account_id=dave.id),
            ]
        )
        _db.session.commit()

        yield flask_app

        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="function")
def db(app):
    """Return the SQLAlchemy db object; ``app`` keeps its context pushed."""
    return _db


def _account(username: str, domain: str | None = None) -> Account:
    query = _db.select(Account).where(Account.username == username)
    if domain is None:
        query = query.where(Account.domain.is_(None))
    else:
        query = query.where(Account.domain == domain)
    return _db.session.execute(query).scalar_one()


@pytest.fixture
def alice(app) -> Account:
    return _account("alice")


@pytest.fixture
def bob(app) -> Account:
    return _account("bob")


@pytest.fixture
def carol(app) -> Account:
    return _account("carol", "remote.example")


@pytest.fixture
def dave(app) -> Account:
    return _account("dave", "remote.example")


@pytest.fixture(scope="function")
def client(app, alice):
    """Return a Flask test client logged in as ``alice``."""
    return app.test_client(user=alice)


@pytest.fixture(scope="function")
def anon_client(app):
    """Return a Flask test client (unauthenticated)."""
    return app.test_client()


@pytest.fixture
def make_import(app):
    """Factory that stores an import with the given payloads directly."""

    def _make(
        owner: Account,
        kind: str,
        payloads: list[dict],
        *,
        state: str = "unconfirmed",
        mode: str = "merge",
        outcomes: list[tuple[str, str | None]] | None = None,
    ) -> BulkImport:
        bulk_import = BulkImport(
            account_id=owner.id,
            type=kind,
            mode=mode,
            state=state,
            total_items=len(payloads),
        )
        for index, payload in enumerate(payloads):
            row = BulkImportRow()
            row.set_data(payload)
            if outcomes is not None:
                row.outcome, row.failure_reason = outcomes[index]
            bulk_import.rows.append(row)
        _db.session.add(bulk_import)
        _db.session.commit()
        return bulk_import

    return _make
