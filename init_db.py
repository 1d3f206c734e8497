"""
F05 - Database initialisation script for the account relationship importer.

Creates all tables and reports the SQLite journal mode (WAL is enabled
on every connection by create_app, so the web process can read while
the import worker writes).

Safe to run multiple times (idempotent).

Usage:
    python init_db.py
"""

from __future__ import annotations

import sys

from sqlalchemy import text

from relimport import create_app, db


def init_database() -> None:
    """Initialise the database within the Flask application context."""
    app = create_app()

    with app.app_context():
        db.create_all()
        print("[init_db] Tables created / verified.")

        if db.engine.dialect.name == "sqlite":
            with db.engine.connect() as conn:
                mode = conn.execute(text("PRAGMA journal_mode")).scalar()
            print(f"[init_db] SQLite journal_mode = {mode}")

        print("[init_db] Initialisation complete.")


if __name__ == "__main__":
    try:
        init_database()
    except Exception as exc:  # pylint: disable=broad-except
        print(f"[init_db] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
