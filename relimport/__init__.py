"""
F01 - Flask application factory for the account relationship importer.

Creates and configures the Flask application, registers the imports
blueprint, and initialises extensions (SQLAlchemy, Flask-Login, Flask-WTF).
"""

from __future__ import annotations

import logging
import sys

from flask import Flask, has_request_context, request
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

from relimport.config import Config

# ---------------------------------------------------------------------------
# Extension instances (created here, initialised in create_app)
# ---------------------------------------------------------------------------
db: SQLAlchemy = SQLAlchemy()
login_manager: LoginManager = LoginManager()
csrf: CSRFProtect = CSRFProtect()


def _configure_logging(debug: bool) -> None:
    """Configure root logger for the application.

    Logging is sent to stdout so WSGI hosts and the worker supervisor
    capture it without requiring file handlers.

    Format: timestamp  level  logger-name  message

    Args:
        debug: When True, sets the root level to DEBUG.  Otherwise INFO.
    """
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)-8s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )

    root_logger = logging.getLogger()
    # create_app() runs once per test; keep a single handler.
    if not root_logger.handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


_READ_ONLY_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _sqlite_begin_statement() -> str:
    """Statement that opens a transaction on a SQLite connection.

    Read-only requests use a deferred BEGIN so they keep reading under WAL
    while the worker writes.  Everything else, including the worker (which
    runs outside any request), uses IMMEDIATE: the write lock is taken up
    front, waiting on busy_timeout, instead of failing later when a read
    lock cannot be upgraded.
    """
    if has_request_context() and request.method in _READ_ONLY_METHODS:
        return "BEGIN"
    return "BEGIN IMMEDIATE"


def create_app(config_object: object = Config) -> Flask:
    """Application factory.

    Args:
        config_object: Configuration class or object to load settings from.

    Returns:
        A fully configured Flask application instance.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(debug=app.debug)

    # ------------------------------------------------------------------
    # Initialise extensions
    # ------------------------------------------------------------------
    db.init_app(app)

    # WAL lets the request path read while the import worker writes rows.
    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            from sqlalchemy import event

            @event.listens_for(db.engine, "connect")
            def _set_sqlite_pragma(dbapi_conn, connection_record):  # noqa: ARG001
                # pysqlite's own BEGIN handling breaks SAVEPOINT, which the
                # row processor relies on; the begin hook below emits it.
                dbapi_conn.isolation_level = None
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA busy_timeout=30000")
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            @event.listens_for(db.engine, "begin")
            def _begin_sqlite_transaction(conn):
                conn.exec_driver_sql(_sqlite_begin_statement())

    csrf.init_app(app)
    login_manager.init_app(app)

    # Registers the Flask-Login user_loader.
    from relimport.utils import auth  # noqa: F401

    # ------------------------------------------------------------------
    # Register blueprints
    # ------------------------------------------------------------------
    from relimport.imports import bp as imports_bp

    app.register_blueprint(imports_bp)

    # ------------------------------------------------------------------
    # Security headers
    # ------------------------------------------------------------------
    from flask import Response

    @app.after_request
    def set_security_headers(response: Response) -> Response:
        """Attach security-related HTTP response headers."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response

    return app
