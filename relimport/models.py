"""
F03 - SQLAlchemy models for the account relationship importer.

Account graph:
  Account, Status, Follow, Block, Mute, AccountDomainBlock, Bookmark,
  AccountList, ListAccount

Import pipeline:
  BulkImport, BulkImportRow, ImportQueueEntry
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from flask_login import UserMixin
from sqlalchemy.orm import validates

from relimport import db

# ---------------------------------------------------------------------------
# Import vocabulary
# ---------------------------------------------------------------------------

IMPORT_KINDS: tuple[str, ...] = (
    "following",
    "blocking",
    "muting",
    "domain_blocking",
    "bookmarks",
    "lists",
)
IMPORT_MODES: tuple[str, ...] = ("merge", "overwrite")

# Ordered: a job only ever moves forward through this tuple.
IMPORT_STATES: tuple[str, ...] = ("unconfirmed", "scheduled", "in_progress", "finished")

ROW_OUTCOMES: tuple[str, ...] = ("pending", "imported", "failed")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


class Account(UserMixin, db.Model):
    """A local or known remote account.  Local accounts own imports."""

    __tablename__ = "accounts"
    __table_args__ = (db.UniqueConstraint("username", "domain", name="uq_account_username_domain"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True, autoincrement=True)
    username: db.Mapped[str] = db.mapped_column(db.String(80), nullable=False)
    # NULL for local accounts.
    domain: db.Mapped[str | None] = db.mapped_column(db.String(255), nullable=True, index=True)
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    is_active: db.Mapped[bool] = db.mapped_column(db.Boolean, default=True, nullable=False)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------
    bulk_imports: db.Mapped[list[BulkImport]] = db.relationship(
        "BulkImport",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="BulkImport.id.desc()",
    )

    @property
    def local(self) -> bool:
        return self.domain is None

    @property
    def acct(self) -> str:
        """``username`` for local accounts, ``username@domain`` otherwise."""
        if self.domain is None:
            return self.username
        return f"{self.username}@{self.domain}"

    def following_count(self) -> int:
        return db.session.execute(
            db.select(db.func.count(Follow.id)).where(Follow.account_id == self.id)
        ).scalar_one()

    def followers_count(self) -> int:
        return db.session.execute(
            db.select(db.func.count(Follow.id)).where(Follow.target_account_id == self.id)
        ).scalar_one()

    def __repr__(self) -> str:
        return f"<Account id={self.id} acct={self.acct!r}>"


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class Status(db.Model):
    """A known post, addressable by its canonical URI."""

    __tablename__ = "statuses"

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    uri: db.Mapped[str] = db.mapped_column(db.String(2048), unique=True, nullable=False)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    account: db.Mapped[Account] = db.relationship("Account")

    def __repr__(self) -> str:
        return f"<Status id={self.id} uri={self.uri!r}>"


# ---------------------------------------------------------------------------
# Account-to-account relationships
# ---------------------------------------------------------------------------


class Follow(db.Model):
    """``account`` follows ``target_account``."""

    __tablename__ = "follows"
    __table_args__ = (db.UniqueConstraint("account_id", "target_account_id", name="uq_follow_pair"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    target_account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    show_reblogs: db.Mapped[bool] = db.mapped_column(db.Boolean, default=True, nullable=False)
    notify: db.Mapped[bool] = db.mapped_column(db.Boolean, default=False, nullable=False)
    languages: db.Mapped[str | None] = db.mapped_column(db.Text, nullable=True)  # JSON list
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    account: db.Mapped[Account] = db.relationship("Account", foreign_keys=[account_id])
    target_account: db.Mapped[Account] = db.relationship("Account", foreign_keys=[target_account_id])

    def get_languages(self) -> list:
        """Deserialise languages JSON, returning an empty list when unset."""
        return _load_json(self.languages, default=[])

    def set_languages(self, languages: list[str] | None) -> None:
        self.languages = json.dumps(list(languages)) if languages else None

    def __repr__(self) -> str:
        return f"<Follow {self.account_id} -> {self.target_account_id}>"


class Block(db.Model):
    """``account`` blocks ``target_account``."""

    __tablename__ = "blocks"
    __table_args__ = (db.UniqueConstraint("account_id", "target_account_id", name="uq_block_pair"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    target_account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    target_account: db.Mapped[Account] = db.relationship("Account", foreign_keys=[target_account_id])


class Mute(db.Model):
    """``account`` mutes ``target_account``."""

    __tablename__ = "mutes"
    __table_args__ = (db.UniqueConstraint("account_id", "target_account_id", name="uq_mute_pair"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    target_account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    hide_notifications: db.Mapped[bool] = db.mapped_column(db.Boolean, default=True, nullable=False)
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    target_account: db.Mapped[Account] = db.relationship("Account", foreign_keys=[target_account_id])


class AccountDomainBlock(db.Model):
    """A whole remote domain hidden from ``account``."""

    __tablename__ = "account_domain_blocks"
    __table_args__ = (db.UniqueConstraint("account_id", "domain", name="uq_account_domain_block"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    domain: db.Mapped[str] = db.mapped_column(db.String(255), nullable=False)
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )


class Bookmark(db.Model):
    __tablename__ = "bookmarks"
    __table_args__ = (db.UniqueConstraint("account_id", "status_id", name="uq_bookmark"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    status_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("statuses.id", ondelete="CASCADE"), nullable=False
    )
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    status: db.Mapped[Status] = db.relationship("Status")


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------


class AccountList(db.Model):
    """A named list of followed accounts owned by ``account``."""

    __tablename__ = "lists"
    __table_args__ = (db.UniqueConstraint("account_id", "title", name="uq_list_title"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    title: db.Mapped[str] = db.mapped_column(db.String(255), nullable=False)
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    memberships: db.Mapped[list[ListAccount]] = db.relationship(
        "ListAccount",
        back_populates="account_list",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<AccountList id={self.id} title={self.title!r}>"


class ListAccount(db.Model):
    __tablename__ = "list_accounts"
    __table_args__ = (db.UniqueConstraint("list_id", "account_id", name="uq_list_member"),)

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    list_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("lists.id", ondelete="CASCADE"), nullable=False
    )
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )

    account_list: db.Mapped[AccountList] = db.relationship("AccountList", back_populates="memberships")
    account: db.Mapped[Account] = db.relationship("Account")


# ---------------------------------------------------------------------------
# BulkImport
# ---------------------------------------------------------------------------


class BulkImport(db.Model):
    """One uploaded import file and its lifecycle state."""

    __tablename__ = "bulk_imports"
    __table_args__ = (
        db.Index("ix_bulk_imports_account_state", "account_id", "state"),
    )

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    account_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    type: db.Mapped[str] = db.mapped_column(db.String(20), nullable=False)  # one of IMPORT_KINDS
    mode: db.Mapped[str] = db.mapped_column(db.String(10), default="merge", nullable=False)
    state: db.Mapped[str] = db.mapped_column(db.String(20), default="unconfirmed", nullable=False)
    total_items: db.Mapped[int] = db.mapped_column(db.Integer, default=0, nullable=False)
    processed_items: db.Mapped[int] = db.mapped_column(db.Integer, default=0, nullable=False)
    imported_items: db.Mapped[int] = db.mapped_column(db.Integer, default=0, nullable=False)
    # Rows of the upload skipped at parse time for a blank required column.
    dropped_items: db.Mapped[int] = db.mapped_column(db.Integer, default=0, nullable=False)
    original_filename: db.Mapped[str | None] = db.mapped_column(db.String(255), nullable=True)
    likely_mismatched: db.Mapped[bool] = db.mapped_column(db.Boolean, default=False, nullable=False)
    created_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    started_at: db.Mapped[datetime | None] = db.mapped_column(
        db.DateTime(timezone=True), nullable=True
    )
    finished_at: db.Mapped[datetime | None] = db.mapped_column(
        db.DateTime(timezone=True), nullable=True
    )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------
    account: db.Mapped[Account] = db.relationship("Account", back_populates="bulk_imports")
    rows: db.Mapped[list[BulkImportRow]] = db.relationship(
        "BulkImportRow",
        back_populates="bulk_import",
        cascade="all, delete-orphan",
        order_by="BulkImportRow.id",
    )

    @property
    def overwrite(self) -> bool:
        return self.mode == "overwrite"

    @property
    def progress(self) -> float:
        """Percentage of rows processed so far (0-100)."""
        if not self.total_items:
            return 0.0
        return round(self.processed_items * 100.0 / self.total_items, 1)

    def __repr__(self) -> str:
        return f"<BulkImport id={self.id} type={self.type!r} state={self.state!r}>"


class BulkImportRow(db.Model):
    """A single decoded record of a BulkImport."""

    __tablename__ = "bulk_import_rows"

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    bulk_import_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("bulk_imports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    data: db.Mapped[str] = db.mapped_column(db.Text, nullable=False)  # JSON object
    outcome: db.Mapped[str] = db.mapped_column(db.String(10), default="pending", nullable=False)
    failure_reason: db.Mapped[str | None] = db.mapped_column(db.String(255), nullable=True)

    bulk_import: db.Mapped[BulkImport] = db.relationship("BulkImport", back_populates="rows")

    def get_data(self) -> dict:
        """Deserialise the row payload, returning an empty dict on failure."""
        return _load_json(self.data)

    def set_data(self, payload: dict) -> None:
        self.data = json.dumps(payload, ensure_ascii=False)

    @validates("outcome")
    def _validate_outcome(self, key: str, value: str) -> str:
        if value not in ROW_OUTCOMES:
            raise ValueError(f"Unknown row outcome: {value!r}")
        return value

    def __repr__(self) -> str:
        return f"<BulkImportRow id={self.id} import={self.bulk_import_id} outcome={self.outcome!r}>"


# ---------------------------------------------------------------------------
# ImportQueueEntry
# ---------------------------------------------------------------------------


class ImportQueueEntry(db.Model):
    """Durable hand-off of a confirmed import to the worker process."""

    __tablename__ = "import_queue"
    __table_args__ = (
        db.Index("ix_import_queue_available", "dead_at", "locked_at", "available_at"),
    )

    id: db.Mapped[int] = db.mapped_column(db.Integer, primary_key=True)
    bulk_import_id: db.Mapped[int] = db.mapped_column(
        db.Integer, db.ForeignKey("bulk_imports.id", ondelete="CASCADE"), nullable=False
    )
    enqueued_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    available_at: db.Mapped[datetime] = db.mapped_column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    locked_at: db.Mapped[datetime | None] = db.mapped_column(
        db.DateTime(timezone=True), nullable=True
    )
    attempts: db.Mapped[int] = db.mapped_column(db.Integer, default=0, nullable=False)
    last_error: db.Mapped[str | None] = db.mapped_column(db.Text, nullable=True)
    dead_at: db.Mapped[datetime | None] = db.mapped_column(
        db.DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<ImportQueueEntry id={self.id} import={self.bulk_import_id}"
            f" attempts={self.attempts}>"
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_json(value: str | None, *, default: object = None) -> object:
    """Safely deserialise a JSON string, returning *default* on any error."""
    if default is None:
        default = {}
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default
