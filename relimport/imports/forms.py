"""
F18 - Flask-WTF form for uploading an import file.
"""

from __future__ import annotations

from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired
from wtforms import SelectField
from wtforms.validators import DataRequired

from relimport.models import IMPORT_KINDS, IMPORT_MODES

_KIND_LABELS: dict[str, str] = {
    "following": "Following list",
    "blocking": "Blocking list",
    "muting": "Muting list",
    "domain_blocking": "Domain blocking list",
    "bookmarks": "Bookmarks",
    "lists": "Lists",
}

_MODE_LABELS: dict[str, str] = {
    "merge": "Merge: keep existing records and add new ones",
    "overwrite": "Overwrite: replace existing records with the new ones",
}


class ImportForm(FlaskForm):
    """Upload form: what the file contains, how to apply it, and the file."""

    kind = SelectField(
        "Import type",
        choices=[(kind, _KIND_LABELS[kind]) for kind in IMPORT_KINDS],
        validators=[DataRequired(message="Import type is required.")],
    )
    mode = SelectField(
        "Mode",
        choices=[(mode, _MODE_LABELS[mode]) for mode in IMPORT_MODES],
        default="merge",
        validators=[DataRequired()],
    )
    file = FileField(
        "File",
        validators=[
            FileRequired(message="Please choose a file to upload."),
            FileAllowed(["csv", "txt"], message="Only .csv and .txt files are accepted."),
        ],
    )
