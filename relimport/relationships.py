"""
F20 - Account relationship graph primitives.

Follow, block, mute, domain block, bookmark and list-membership mutations
for a single owning account, plus lookup of the accounts and statuses an
import row refers to.  Lookups only consult the local database; an address
or URI we do not know about is a row failure, not a remote fetch.

Every mutation flushes but never commits: the caller owns the transaction
(the import processor wraps each row in a savepoint).
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

from flask import current_app

from relimport import db
from relimport.imports.errors import RowFailure
from relimport.models import (
    Account,
    AccountDomainBlock,
    AccountList,
    Block,
    Bookmark,
    Follow,
    ListAccount,
    Mute,
    Status,
)

logger = logging.getLogger(__name__)

# Hostname validation: lowercase labels separated by dots, min 2-char TLD
_HOSTNAME_RE = re.compile(
    r"^[a-z0-9]([a-z0-9\-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9\-]*[a-z0-9])?)*\.[a-z0-9\-]{2,}$"
)


# ---------------------------------------------------------------------------
# Addresses and lookups
# ---------------------------------------------------------------------------


def local_domain() -> str:
    return (current_app.config.get("LOCAL_DOMAIN") or "localhost").lower()


def normalize_acct(acct: str) -> str:
    """Canonical lowercase form of an account address.

    ``alice``, ``@Alice`` and ``alice@<LOCAL_DOMAIN>`` all normalise to
    ``alice``; remote addresses keep their domain.
    """
    username, _, domain = acct.strip().lstrip("@").lower().partition("@")
    if not domain or domain == local_domain():
        return username
    return f"{username}@{domain}"


def normalize_domain(value: str) -> str:
    """Return the bare lowercase hostname for *value*.

    Accepts ``example.com``, ``Example.COM.`` or ``https://example.com/path``.

    Raises:
        RowFailure: If *value* is not a valid hostname.
    """
    candidate = value.strip()
    if "://" in candidate:
        try:
            candidate = urlsplit(candidate).hostname or ""
        except ValueError:
            raise RowFailure(f"invalid domain: {value}") from None
    candidate = candidate.rstrip(".").lower()
    try:
        candidate = candidate.encode("idna").decode("ascii")
    except UnicodeError:
        raise RowFailure(f"invalid domain: {value}") from None
    if not _HOSTNAME_RE.match(candidate):
        raise RowFailure(f"invalid domain: {value}")
    return candidate


def resolve_account(acct: str) -> Account:
    """Find the active account for *acct*.

    Raises:
        RowFailure: If no such account is known.
    """
    username, _, domain = normalize_acct(acct).partition("@")
    query = db.select(Account).where(
        db.func.lower(Account.username) == username,
        Account.is_active == True,  # noqa: E712
    )
    if domain:
        query = query.where(db.func.lower(Account.domain) == domain)
    else:
        query = query.where(Account.domain.is_(None))

    account = db.session.execute(query).scalars().first()
    if account is None:
        raise RowFailure(f"account not found: {acct}")
    return account


def resolve_status(uri: str) -> Status:
    status = db.session.execute(
        db.select(Status).where(Status.uri == uri.strip())
    ).scalars().first()
    if status is None:
        raise RowFailure(f"status not found: {uri}")
    return status


def _find_follow(account: Account, target: Account) -> Follow | None:
    return db.session.execute(
        db.select(Follow).where(
            Follow.account_id == account.id, Follow.target_account_id == target.id
        )
    ).scalars().first()


def is_blocking(account: Account, target: Account) -> bool:
    return db.session.execute(
        db.select(Block.id).where(
            Block.account_id == account.id, Block.target_account_id == target.id
        )
    ).first() is not None


def is_domain_blocking(account: Account, domain: str) -> bool:
    return db.session.execute(
        db.select(AccountDomainBlock.id).where(
            AccountDomainBlock.account_id == account.id,
            AccountDomainBlock.domain == domain.lower(),
        )
    ).first() is not None


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------


def follow(
    account: Account,
    target: Account,
    *,
    show_reblogs: bool = True,
    notify: bool = False,
    languages: list[str] | None = None,
) -> Follow:
    """Follow *target*, or update the options of an existing follow."""
    if target.id == account.id:
        raise RowFailure("cannot follow yourself")
    if is_blocking(account, target):
        raise RowFailure(f"you are blocking {target.acct}")
    if is_blocking(target, account):
        raise RowFailure(f"{target.acct} has blocked you")
    if target.domain and is_domain_blocking(account, target.domain):
        raise RowFailure(f"you are blocking the domain {target.domain}")

    existing = _find_follow(account, target)
    if existing is None:
        existing = Follow(account_id=account.id, target_account_id=target.id)
        db.session.add(existing)
    existing.show_reblogs = show_reblogs
    existing.notify = notify
    existing.set_languages(languages)
    db.session.flush()
    return existing


def unfollow(account: Account, target: Account) -> bool:
    """Stop following *target* and drop it from *account*'s lists."""
    existing = _find_follow(account, target)
    _remove_from_lists(account, target)
    if existing is None:
        return False
    db.session.delete(existing)
    db.session.flush()
    return True


def _remove_from_lists(account: Account, target: Account) -> None:
    list_ids = db.select(AccountList.id).where(AccountList.account_id == account.id)
    memberships = db.session.execute(
        db.select(ListAccount).where(
            ListAccount.list_id.in_(list_ids), ListAccount.account_id == target.id
        )
    ).scalars().all()
    for membership in memberships:
        db.session.delete(membership)


def _sever(account: Account, target: Account) -> None:
    unfollow(account, target)
    unfollow(target, account)


# ---------------------------------------------------------------------------
# Blocks and mutes
# ---------------------------------------------------------------------------


def block(account: Account, target: Account) -> Block:
    """Block *target*; existing follows in either direction are removed."""
    if target.id == account.id:
        raise RowFailure("cannot block yourself")

    existing = db.session.execute(
        db.select(Block).where(
            Block.account_id == account.id, Block.target_account_id == target.id
        )
    ).scalars().first()
    if existing is None:
        existing = Block(account_id=account.id, target_account_id=target.id)
        db.session.add(existing)
    _sever(account, target)
    db.session.flush()
    return existing


def unblock(account: Account, target: Account) -> bool:
    deleted = db.session.execute(
        db.delete(Block).where(
            Block.account_id == account.id, Block.target_account_id == target.id
        )
    ).rowcount
    return bool(deleted)


def mute(account: Account, target: Account, *, hide_notifications: bool = True) -> Mute:
    """Mute *target*, or update whether an existing mute hides notifications."""
    if target.id == account.id:
        raise RowFailure("cannot mute yourself")

    existing = db.session.execute(
        db.select(Mute).where(
            Mute.account_id == account.id, Mute.target_account_id == target.id
        )
    ).scalars().first()
    if existing is None:
        existing = Mute(account_id=account.id, target_account_id=target.id)
        db.session.add(existing)
    existing.hide_notifications = hide_notifications
    db.session.flush()
    return existing


def unmute(account: Account, target: Account) -> bool:
    deleted = db.session.execute(
        db.delete(Mute).where(
            Mute.account_id == account.id, Mute.target_account_id == target.id
        )
    ).rowcount
    return bool(deleted)


# ---------------------------------------------------------------------------
# Domain blocks
# ---------------------------------------------------------------------------


def block_domain(account: Account, domain: str) -> AccountDomainBlock:
    """Hide a whole domain from *account* and sever follows with its accounts."""
    hostname = normalize_domain(domain)
    if hostname == local_domain():
        raise RowFailure("cannot block your own domain")

    existing = db.session.execute(
        db.select(AccountDomainBlock).where(
            AccountDomainBlock.account_id == account.id,
            AccountDomainBlock.domain == hostname,
        )
    ).scalars().first()
    if existing is None:
        existing = AccountDomainBlock(account_id=account.id, domain=hostname)
        db.session.add(existing)

    remote_accounts = db.session.execute(
        db.select(Account).where(db.func.lower(Account.domain) == hostname)
    ).scalars().all()
    for remote in remote_accounts:
        _sever(account, remote)

    db.session.flush()
    return existing


def unblock_domain(account: Account, domain: str) -> bool:
    deleted = db.session.execute(
        db.delete(AccountDomainBlock).where(
            AccountDomainBlock.account_id == account.id,
            AccountDomainBlock.domain == domain.lower(),
        )
    ).rowcount
    return bool(deleted)


# ---------------------------------------------------------------------------
# Bookmarks
# ---------------------------------------------------------------------------


def bookmark(account: Account, uri: str) -> Bookmark:
    status = resolve_status(uri)
    existing = db.session.execute(
        db.select(Bookmark).where(
            Bookmark.account_id == account.id, Bookmark.status_id == status.id
        )
    ).scalars().first()
    if existing is None:
        existing = Bookmark(account_id=account.id, status_id=status.id)
        db.session.add(existing)
        db.session.flush()
    return existing


def unbookmark(account: Account, bookmark_row: Bookmark) -> None:
    db.session.delete(bookmark_row)
    db.session.flush()


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------


def find_or_create_list(account: Account, title: str) -> AccountList:
    account_list = db.session.execute(
        db.select(AccountList).where(
            AccountList.account_id == account.id, AccountList.title == title
        )
    ).scalars().first()
    if account_list is None:
        account_list = AccountList(account_id=account.id, title=title)
        db.session.add(account_list)
        db.session.flush()
    return account_list


def add_to_list(account: Account, title: str, target: Account) -> ListAccount:
    """Put *target* on *account*'s list *title*, following it first if needed.

    Lists only ever contain followed accounts, so a follow that cannot be
    made (self, blocks) fails the row.
    """
    if target.id == account.id:
        raise RowFailure("cannot add yourself to a list")
    if _find_follow(account, target) is None:
        follow(account, target)

    account_list = find_or_create_list(account, title)
    membership = db.session.execute(
        db.select(ListAccount).where(
            ListAccount.list_id == account_list.id, ListAccount.account_id == target.id
        )
    ).scalars().first()
    if membership is None:
        membership = ListAccount(list_id=account_list.id, account_id=target.id)
        db.session.add(membership)
        db.session.flush()
    return membership
