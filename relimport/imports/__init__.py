"""Imports blueprint - bulk import of follows, blocks, mutes, domain blocks, bookmarks and lists."""

from __future__ import annotations

from flask import Blueprint

bp: Blueprint = Blueprint("imports", __name__, url_prefix="/settings/imports")

from relimport.imports import routes  # noqa: E402, F401
