"""
F11 - Row codecs for each import kind.

A codec knows, for one kind of import, which CSV columns exist, how a raw
CSV record becomes a normalised row payload (``decode``), and how a stored
payload is written back out as a CSV line (``encode``) for failure reports.

Kinds and their columns:

=================  =========================================================
following          Account address, Show boosts, Notify on new posts, Languages
blocking           Account address
muting             Account address, Hide notifications
domain_blocking    #domain
bookmarks          #uri
lists              List name, Account address
=================  =========================================================

Kinds with optional columns export a header row; purely positional kinds
do not, so their exports can be re-imported as plain lists.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

# Header cells that mark the first line of a file as a header row.
KNOWN_FIRST_HEADERS: frozenset[str] = frozenset(
    {"Account address", "#domain", "#uri", "List name"}
)

# Case-insensitive spellings that decode to False; any other non-blank
# value decodes to True.
_FALSE_VALUES: frozenset[str] = frozenset({"0", "f", "false", "off"})

_LEADING_AT_RE = re.compile(r"\A@")


@dataclass(frozen=True)
class Field:
    """One column of an import file."""

    key: str
    header: str
    cast: str  # "account" | "text" | "boolean" | "languages"
    required: bool = False
    default: Any = None

    def default_value(self) -> Any:
        if self.cast == "languages":
            return list(self.default or ())
        return self.default


def _decode_value(field: Field, raw: str | None) -> Any:
    """Cast one raw cell; returns None when the cell is blank."""
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None

    if field.cast == "account":
        return _LEADING_AT_RE.sub("", value) or None
    if field.cast == "boolean":
        return value.lower() not in _FALSE_VALUES
    if field.cast == "languages":
        languages = [part.strip() for part in value.split(",") if part.strip()]
        return languages or None
    return value


def _encode_value(field: Field, value: Any) -> str:
    if value is None:
        value = field.default_value()

    if field.cast == "boolean":
        return "true" if value else "false"
    if field.cast == "languages":
        return ", ".join(value) if value else ""
    return "" if value is None else str(value)


@dataclass(frozen=True)
class RowCodec:
    """Decode/encode rules for a single import kind."""

    kind: str
    fields: tuple[Field, ...]

    @property
    def headers(self) -> list[str]:
        return [f.header for f in self.fields]

    @property
    def required_headers(self) -> list[str]:
        """Headers assumed, in order, when a file has no header row."""
        return [f.header for f in self.fields if f.required]

    @property
    def export_headers(self) -> bool:
        """Only kinds with optional columns need a header row to be unambiguous."""
        return any(not f.required for f in self.fields)

    def decode(self, record: Mapping[str, str | None]) -> dict[str, Any] | None:
        """Turn a header -> cell mapping into a payload.

        Optional columns that are absent or blank take their schema
        default.  Returns None when a required column is absent or blank.
        """
        payload: dict[str, Any] = {}
        for field in self.fields:
            value = _decode_value(field, record.get(field.header))
            if value is None:
                if field.required:
                    return None
                value = field.default_value()
            payload[field.key] = value
        return payload

    def with_defaults(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Return *payload* restricted to this kind's keys, defaults filled in."""
        filled: dict[str, Any] = {}
        for field in self.fields:
            value = payload.get(field.key)
            filled[field.key] = field.default_value() if value is None else value
        return filled

    def encode(self, payload: Mapping[str, Any]) -> list[str]:
        """Turn a stored payload back into CSV cells, in column order."""
        return [_encode_value(field, payload.get(field.key)) for field in self.fields]

    def encode_rows(self, payloads: Iterable[Mapping[str, Any]]) -> str:
        """Render payloads as CSV text, with a header row when the kind has one."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        if self.export_headers:
            writer.writerow(self.headers)
        for payload in payloads:
            writer.writerow(self.encode(payload))
        return buffer.getvalue()


# ---------------------------------------------------------------------------
# Codec registry
# ---------------------------------------------------------------------------

_ACCOUNT_ADDRESS = Field("acct", "Account address", "account", required=True)

CODECS: dict[str, RowCodec] = {
    "following": RowCodec(
        "following",
        (
            _ACCOUNT_ADDRESS,
            Field("show_reblogs", "Show boosts", "boolean", default=True),
            Field("notify", "Notify on new posts", "boolean", default=False),
            Field("languages", "Languages", "languages", default=()),
        ),
    ),
    "blocking": RowCodec("blocking", (_ACCOUNT_ADDRESS,)),
    "muting": RowCodec(
        "muting",
        (
            _ACCOUNT_ADDRESS,
            Field("hide_notifications", "Hide notifications", "boolean", default=True),
        ),
    ),
    "domain_blocking": RowCodec(
        "domain_blocking",
        (Field("domain", "#domain", "text", required=True),),
    ),
    "bookmarks": RowCodec(
        "bookmarks",
        (Field("uri", "#uri", "text", required=True),),
    ),
    "lists": RowCodec(
        "lists",
        (
            Field("list_name", "List name", "text", required=True),
            _ACCOUNT_ADDRESS,
        ),
    ),
}


def get_codec(kind: str) -> RowCodec:
    """Return the codec for *kind*.

    Raises:
        ValueError: If *kind* is not a known import kind.
    """
    try:
        return CODECS[kind]
    except KeyError:
        raise ValueError(f"Unknown import kind: {kind!r}") from None
