"""
F01/F03 - Tests for the application factory and model guards.
"""

from __future__ import annotations

import pytest

from relimport import _sqlite_begin_statement
from relimport.models import ROW_OUTCOMES, BulkImportRow


# ---------------------------------------------------------------------------
# SQLite transactions
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
def test_read_only_requests_use_deferred_transactions(app, method):
    with app.test_request_context("/settings/imports/", method=method):
        assert _sqlite_begin_statement() == "BEGIN"


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
def test_writing_requests_take_the_write_lock(app, method):
    with app.test_request_context("/settings/imports/", method=method):
        assert _sqlite_begin_statement() == "BEGIN IMMEDIATE"


def test_worker_outside_requests_takes_the_write_lock(app):
    assert _sqlite_begin_statement() == "BEGIN IMMEDIATE"


# ---------------------------------------------------------------------------
# Row outcomes
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("outcome", ROW_OUTCOMES)
def test_known_row_outcomes_are_accepted(app, outcome):
    row = BulkImportRow()
    row.outcome = outcome
    assert row.outcome == outcome


def test_unknown_row_outcome_is_rejected(app):
    row = BulkImportRow()
    with pytest.raises(ValueError, match="Unknown row outcome"):
        row.outcome = "skipped"
