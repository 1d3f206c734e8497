"""
F10 - Exceptions raised by the import pipeline.

Request-path errors (not found, validation) surface to the caller.
RowFailure never leaves the row processor; it is recorded on the row.
"""

from __future__ import annotations


class BulkImportError(Exception):
    """Base class for every import pipeline error."""


class ImportNotFound(BulkImportError):
    """The import does not exist, belongs to someone else, or is in the wrong state.

    All three cases raise the same error so callers cannot tell whether
    another account's import exists.
    """

    def __init__(self, import_id: int | None = None) -> None:
        super().__init__(f"Import {import_id} not found")
        self.import_id = import_id


class ImportValidationError(BulkImportError):
    """The uploaded file could not be turned into at least one row."""


class UnsupportedReportFormat(BulkImportError):
    """A failure report was requested in a format we cannot produce."""


class RowFailure(BulkImportError):
    """A single row could not be applied to the account's relationships."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ProcessorRetryableFailure(BulkImportError):
    """The worker run itself failed transiently; the queue should retry it."""
