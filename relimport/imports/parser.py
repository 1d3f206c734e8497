"""
F12 - Upload parser for the imports blueprint.

Turns the raw bytes of an uploaded CSV/TXT file into the ordered list of
row payloads for a declared import kind.  Two file shapes are accepted:

- **With a header row**: the first line starts with a known header
  (``Account address``, ``#domain``, ``#uri`` or ``List name``).  Columns
  are matched by name and unknown columns are ignored.
- **Positional**: any other first line.  Columns are read in the order of
  the kind's required columns (e.g. ``List name, Account address``).

Rows whose required columns are blank are dropped.  The whole file is
rejected with :class:`ImportValidationError` when it is empty, malformed,
built for a different kind, too long, or has no usable row at all.
"""

from __future__ import annotations

import csv
import io
import logging
import os
from dataclasses import dataclass
from typing import Any

from relimport.imports.codec import KNOWN_FIRST_HEADERS, RowCodec, get_codec
from relimport.imports.errors import ImportValidationError

logger = logging.getLogger(__name__)

# Filename prefixes used by common export tools, checked in order.
_FILENAME_PREFIXES: tuple[tuple[str, str], ...] = (
    ("following_accounts", "following"),
    ("follows", "following"),
    ("blocked_accounts", "blocking"),
    ("blocked_domains", "domain_blocking"),
    ("domain_blocks", "domain_blocking"),
    ("blocks", "blocking"),
    ("muted_accounts", "muting"),
    ("mutes", "muting"),
    ("bookmarks", "bookmarks"),
    ("lists", "lists"),
)


@dataclass
class ParsedImport:
    """Result of parsing one upload."""

    kind: str
    rows: list[dict[str, Any]]
    headers: list[str]
    has_header_row: bool
    dropped_rows: int = 0
    guessed_kind: str | None = None

    @property
    def likely_mismatched(self) -> bool:
        return self.guessed_kind is not None and self.guessed_kind != self.kind


def guess_kind(headers: list[str], filename: str | None) -> str | None:
    """Guess which kind of export a file is from its headers, then its name.

    Returns None when neither gives a hint.
    """
    if "Hide notifications" in headers:
        return "muting"
    if {"Show boosts", "Notify on new posts", "Languages"} & set(headers):
        return "following"
    if "#domain" in headers:
        return "domain_blocking"
    if "#uri" in headers:
        return "bookmarks"
    if "List name" in headers:
        return "lists"

    basename = os.path.basename(filename or "").lower()
    for prefix, kind in _FILENAME_PREFIXES:
        if basename.startswith(prefix):
            return kind
    return None


def _read_records(content: bytes | str) -> list[list[str]]:
    """Decode *content* and return its non-blank CSV records."""
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ImportValidationError("The file is not valid UTF-8 text.") from exc
    else:
        text = content.lstrip("\ufeff")

    try:
        records = list(csv.reader(io.StringIO(text), strict=True))
    except csv.Error as exc:
        raise ImportValidationError(f"The file is not a valid CSV file: {exc}") from exc

    return [record for record in records if any(cell.strip() for cell in record)]


def _resolve_headers(codec: RowCodec, first: list[str]) -> tuple[list[str], bool]:
    first_cell = first[0].strip() if first else ""
    if first_cell in KNOWN_FIRST_HEADERS:
        return [cell.strip() for cell in first], True
    return codec.required_headers, False


def parse_import_file(
    kind: str,
    content: bytes | str,
    filename: str | None = None,
    *,
    max_rows: int | None = None,
) -> ParsedImport:
    """Parse an uploaded file into row payloads for *kind*.

    Args:
        kind: Declared import kind (see ``relimport.imports.codec.CODECS``).
        content: Raw upload, as bytes or already-decoded text.
        filename: Original filename, used only to guess the file's kind.
        max_rows: Reject files with more data rows than this.

    Returns:
        A :class:`ParsedImport` with at least one row.

    Raises:
        ImportValidationError: If the file cannot be used for *kind*.
    """
    try:
        codec = get_codec(kind)
    except ValueError as exc:
        raise ImportValidationError(str(exc)) from exc

    records = _read_records(content)
    if not records:
        raise ImportValidationError("The file is empty.")

    headers, has_header_row = _resolve_headers(codec, records[0])
    data_records = records[1:] if has_header_row else records

    missing = [header for header in codec.required_headers if header not in headers]
    if missing:
        logger.info(
            "Import rejected - incompatible file: kind=%s headers=%r missing=%r",
            kind,
            headers,
            missing,
        )
        raise ImportValidationError(
            "This file does not match the selected import type "
            f"(missing column: {', '.join(missing)})."
        )

    if max_rows is not None and len(data_records) > max_rows:
        raise ImportValidationError(
            f"The file has too many rows; at most {max_rows} rows can be imported at once."
        )

    rows: list[dict[str, Any]] = []
    dropped = 0
    for record in data_records:
        payload = codec.decode(dict(zip(headers, record)))
        if payload is None:
            dropped += 1
            continue
        rows.append(payload)

    if not rows:
        raise ImportValidationError("The file does not contain any valid rows.")

    parsed = ParsedImport(
        kind=kind,
        rows=rows,
        headers=headers,
        has_header_row=has_header_row,
        dropped_rows=dropped,
        guessed_kind=guess_kind(headers if has_header_row else [], filename),
    )
    logger.debug(
        "Parsed import file: kind=%s rows=%d dropped=%d header_row=%s guessed=%s",
        kind,
        len(rows),
        dropped,
        has_header_row,
        parsed.guessed_kind,
    )
    return parsed
