"""
F11 - Tests for the per-kind row codecs.

Decoding is tested cell by cell; encoding is tested against the exact
text a failure report must contain.
"""

from __future__ import annotations

import pytest

from relimport.imports.codec import CODECS, get_codec


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registry_covers_every_kind():
    from relimport.models import IMPORT_KINDS

    assert set(CODECS) == set(IMPORT_KINDS)


def test_unknown_kind_raises():
    with pytest.raises(ValueError, match="Unknown import kind"):
        get_codec("reblogs")


def test_positional_headers_follow_field_order():
    assert get_codec("lists").required_headers == ["List name", "Account address"]
    assert get_codec("following").required_headers == ["Account address"]


@pytest.mark.parametrize(
    "kind,expected",
    [
        ("following", True),
        ("blocking", False),
        ("muting", True),
        ("domain_blocking", False),
        ("bookmarks", False),
        ("lists", False),
    ],
)
def test_header_row_only_for_kinds_with_optional_columns(kind, expected):
    assert get_codec(kind).export_headers is expected


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def test_following_decode_fills_defaults():
    payload = get_codec("following").decode({"Account address": "foo@bar"})
    assert payload == {
        "acct": "foo@bar",
        "show_reblogs": True,
        "notify": False,
        "languages": [],
    }


def test_following_decode_reads_every_column():
    payload = get_codec("following").decode(
        {
            "Account address": " @user@bar ",
            "Show boosts": "false",
            "Notify on new posts": "true",
            "Languages": "fr, de,, ",
        }
    )
    assert payload == {
        "acct": "user@bar",
        "show_reblogs": False,
        "notify": True,
        "languages": ["fr", "de"],
    }


@pytest.mark.parametrize("raw", ["0", "f", "FALSE", "Off", " false "])
def test_boolean_false_spellings(raw):
    payload = get_codec("muting").decode({"Account address": "foo@bar", "Hide notifications": raw})
    assert payload["hide_notifications"] is False


@pytest.mark.parametrize("raw", ["1", "true", "yes", "t"])
def test_boolean_true_spellings(raw):
    payload = get_codec("muting").decode({"Account address": "foo@bar", "Hide notifications": raw})
    assert payload["hide_notifications"] is True


def test_blank_boolean_takes_default():
    payload = get_codec("muting").decode({"Account address": "foo@bar", "Hide notifications": "  "})
    assert payload["hide_notifications"] is True


def test_blank_required_column_drops_row():
    assert get_codec("blocking").decode({"Account address": "   "}) is None
    assert get_codec("lists").decode({"List name": "Amigos"}) is None


def test_lone_at_sign_is_blank():
    assert get_codec("blocking").decode({"Account address": "@"}) is None


def test_unknown_columns_are_ignored():
    payload = get_codec("blocking").decode({"Account address": "foo@bar", "Note": "spam"})
    assert payload == {"acct": "foo@bar"}


def test_with_defaults_fills_missing_keys():
    assert get_codec("following").with_defaults({"acct": "foo@bar"}) == {
        "acct": "foo@bar",
        "show_reblogs": True,
        "notify": False,
        "languages": [],
    }


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def test_following_export():
    body = get_codec("following").encode_rows(
        [
            {"acct": "foo@bar"},
            {"acct": "user@bar", "show_reblogs": False, "notify": True, "languages": ["fr", "de"]},
        ]
    )
    assert body == (
        "Account address,Show boosts,Notify on new posts,Languages\n"
        "foo@bar,true,false,\n"
        'user@bar,false,true,"fr, de"\n'
    )


def test_single_language_is_not_quoted():
    body = get_codec("following").encode_rows([{"acct": "foo@bar", "languages": ["en"]}])
    assert body.splitlines()[1] == "foo@bar,true,false,en"


def test_blocking_export():
    body = get_codec("blocking").encode_rows([{"acct": "foo@bar"}, {"acct": "user@bar"}])
    assert body == "foo@bar\nuser@bar\n"


def test_muting_export():
    body = get_codec("muting").encode_rows(
        [{"acct": "foo@bar"}, {"acct": "user@bar", "hide_notifications": False}]
    )
    assert body == "Account address,Hide notifications\nfoo@bar,true\nuser@bar,false\n"


def test_domain_blocking_export():
    body = get_codec("domain_blocking").encode_rows(
        [{"domain": "bad.domain"}, {"domain": "evil.domain"}]
    )
    assert body == "bad.domain\nevil.domain\n"


def test_bookmarks_export():
    body = get_codec("bookmarks").encode_rows(
        [{"uri": "https://foo.com/1"}, {"uri": "https://foo.com/2"}]
    )
    assert body == "https://foo.com/1\nhttps://foo.com/2\n"


def test_lists_export():
    body = get_codec("lists").encode_rows(
        [
            {"list_name": "Amigos", "acct": "user@example.com"},
            {"list_name": "Frenemies", "acct": "user@org.org"},
        ]
    )
    assert body == "Amigos,user@example.com\nFrenemies,user@org.org\n"


def test_header_only_export_when_no_rows():
    assert get_codec("muting").encode_rows([]) == "Account address,Hide notifications\n"
    assert get_codec("blocking").encode_rows([]) == ""
