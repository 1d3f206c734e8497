"""
F02 - Configuration module for the account relationship importer.

Loads settings from environment variables with sensible defaults.
"""

import os


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


class Config:
    """Base configuration shared by all environments."""

    # Security
    SECRET_KEY: str = os.environ.get("SECRET_KEY", "dev-secret-change-me")

    # Database
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL",
        "sqlite:///relimport.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False

    # SQLite tuning: the worker writes while requests read, so writers
    # wait up to 30 seconds for the lock instead of failing.
    SQLALCHEMY_ENGINE_OPTIONS: dict = {
        "connect_args": {"timeout": 30},
    }

    # Session hardening
    SESSION_COOKIE_HTTPONLY: bool = True
    SESSION_COOKIE_SAMESITE: str = "Lax"
    SESSION_COOKIE_SECURE: bool = os.environ.get("SESSION_COOKIE_SECURE", "False").lower() == "true"

    # CSRF protection (Flask-WTF)
    WTF_CSRF_ENABLED: bool = True

    # Accounts whose domain matches this one are local.
    LOCAL_DOMAIN: str = os.environ.get("LOCAL_DOMAIN", "localhost")

    # ------------------------------------------------------------------
    # Import limits
    # ------------------------------------------------------------------
    IMPORT_FILE_SIZE_LIMIT: int = _env_int("IMPORT_FILE_SIZE_LIMIT", 20 * 1024 * 1024)  # 20 MB
    IMPORT_ROWS_LIMIT: int = _env_int("IMPORT_ROWS_LIMIT", 20_000)
    IMPORT_FOLLOW_LIMIT: int = _env_int("IMPORT_FOLLOW_LIMIT", 7_500)

    # Multipart overhead on top of the file itself.
    MAX_CONTENT_LENGTH: int = IMPORT_FILE_SIZE_LIMIT + 64 * 1024

    # Listing / review
    IMPORT_RECENT_LIMIT: int = 10
    IMPORT_PREVIEW_ROWS: int = 20

    # ------------------------------------------------------------------
    # Worker / queue
    # ------------------------------------------------------------------
    IMPORT_WORKER_CONCURRENCY: int = _env_int("IMPORT_WORKER_CONCURRENCY", 2)
    IMPORT_WORKER_POLL_SECONDS: int = _env_int("IMPORT_WORKER_POLL_SECONDS", 5)
    IMPORT_QUEUE_MAX_ATTEMPTS: int = _env_int("IMPORT_QUEUE_MAX_ATTEMPTS", 5)
    IMPORT_QUEUE_RETRY_DELAY: int = _env_int("IMPORT_QUEUE_RETRY_DELAY", 30)  # seconds
    IMPORT_QUEUE_LOCK_TIMEOUT: int = _env_int("IMPORT_QUEUE_LOCK_TIMEOUT", 3600)  # seconds
