"""
F20 - Tests for the relationship graph primitives.
"""

from __future__ import annotations

import pytest

from relimport import relationships
from relimport.imports.errors import RowFailure
from relimport.models import AccountDomainBlock, Block, Follow, ListAccount


def _follows(db, account):
    return db.session.execute(
        db.select(Follow).where(Follow.account_id == account.id)
    ).scalars().all()


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("bob", "bob"),
        ("@Bob", "bob"),
        ("bob@example.com", "bob"),
        ("Carol@Remote.Example", "carol@remote.example"),
    ],
)
def test_normalize_acct(app, raw, expected):
    assert relationships.normalize_acct(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Bad.Domain.", "bad.domain"),
        ("https://evil.example/about", "evil.example"),
        ("bücher.example", "xn--bcher-kva.example"),
    ],
)
def test_normalize_domain(raw, expected):
    assert relationships.normalize_domain(raw) == expected


@pytest.mark.parametrize("raw", ["not a domain", "localhost", "-bad-.example", "", "http://[bad"])
def test_normalize_domain_rejects_invalid(raw):
    with pytest.raises(RowFailure, match="invalid domain"):
        relationships.normalize_domain(raw)


def test_resolve_account_is_case_insensitive(app, carol, bob):
    assert relationships.resolve_account("CAROL@remote.example").id == carol.id
    assert relationships.resolve_account("bob@example.com").id == bob.id


def test_resolve_unknown_account_fails(app):
    with pytest.raises(RowFailure, match="account not found"):
        relationships.resolve_account("nobody@nowhere.example")


def test_resolve_skips_inactive_account(db, carol):
    carol.is_active = False
    db.session.commit()
    with pytest.raises(RowFailure):
        relationships.resolve_account("carol@remote.example")


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------


def test_follow_updates_existing_options(db, alice, carol):
    relationships.follow(alice, carol, show_reblogs=True, notify=False, languages=None)
    relationships.follow(alice, carol, show_reblogs=False, notify=True, languages=["fr"])

    follows = _follows(db, alice)
    assert len(follows) == 1
    assert follows[0].show_reblogs is False
    assert follows[0].notify is True
    assert follows[0].get_languages() == ["fr"]


def test_follow_self_fails(alice):
    with pytest.raises(RowFailure, match="yourself"):
        relationships.follow(alice, alice)


def test_follow_blocked_either_way_fails(db, alice, bob, carol):
    relationships.block(alice, bob)
    relationships.block(carol, alice)

    with pytest.raises(RowFailure, match="you are blocking"):
        relationships.follow(alice, bob)
    with pytest.raises(RowFailure, match="has blocked you"):
        relationships.follow(alice, carol)


def test_follow_domain_blocked_account_fails(db, alice, carol):
    relationships.block_domain(alice, "remote.example")
    with pytest.raises(RowFailure, match="domain"):
        relationships.follow(alice, carol)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def test_block_severs_follows_and_list_memberships(db, alice, carol):
    relationships.add_to_list(alice, "Friends", carol)
    relationships.follow(carol, alice)

    relationships.block(alice, carol)

    assert _follows(db, alice) == []
    assert _follows(db, carol) == []
    assert db.session.execute(db.select(ListAccount)).scalars().all() == []
    assert db.session.execute(db.select(Block)).scalars().one().target_account_id == carol.id


def test_block_domain_severs_accounts_on_domain(db, alice, bob, carol, dave):
    relationships.follow(alice, carol)
    relationships.follow(alice, bob)
    relationships.follow(dave, alice)

    relationships.block_domain(alice, "Remote.Example.")

    assert [f.target_account_id for f in _follows(db, alice)] == [bob.id]
    assert _follows(db, dave) == []
    assert db.session.execute(db.select(AccountDomainBlock.domain)).scalars().all() == [
        "remote.example"
    ]


def test_block_local_domain_fails(alice):
    with pytest.raises(RowFailure, match="own domain"):
        relationships.block_domain(alice, "example.com")


# ---------------------------------------------------------------------------
# Bookmarks and lists
# ---------------------------------------------------------------------------


def test_bookmark_is_idempotent(alice):
    first = relationships.bookmark(alice, "https://foo.com/1")
    second = relationships.bookmark(alice, " https://foo.com/1 ")
    assert first.id == second.id


def test_bookmark_unknown_status_fails(alice):
    with pytest.raises(RowFailure, match="status not found"):
        relationships.bookmark(alice, "https://foo.com/404")


def test_add_to_list_follows_target(db, alice, carol):
    membership = relationships.add_to_list(alice, "Amigos", carol)

    assert membership.account_list.title == "Amigos"
    assert [f.target_account_id for f in _follows(db, alice)] == [carol.id]


def test_add_self_to_list_fails(alice):
    with pytest.raises(RowFailure, match="yourself"):
        relationships.add_to_list(alice, "Me", alice)
