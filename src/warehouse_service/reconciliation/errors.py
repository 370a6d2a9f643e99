"""Error taxonomy for spreadsheet import reconciliation."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .engine import ImportSummary


class ReconciliationError(Exception):
    """Base class for errors raised while reconciling an import batch."""


class RowValidationError(ReconciliationError):
    """A raw row cannot be turned into an import row; the batch continues."""

    def __init__(self, row: int, reason: str, *, identity: str | None = None) -> None:
        super().__init__(f"row {row}: {reason}")
        self.row = row
        self.reason = reason
        self.identity = identity


class IdentityAmbiguityWarning(UserWarning):
    """Identity resolution picked one record out of several plausible ones."""


class StoreConflictError(ReconciliationError):
    """A record changed between being read and being written."""


class StoreWriteError(ReconciliationError):
    """The store rejected a single write, e.g. a violated constraint."""


class StoreUnavailableError(ReconciliationError):
    """The store cannot be reached; nothing further can be committed."""


class ImportAbortedError(StoreUnavailableError):
    """Raised when a batch stops early because the store became unavailable.

    ``summary`` describes the effects that were committed before the failure.
    """

    def __init__(self, summary: ImportSummary) -> None:
        super().__init__(
            f"import aborted after {summary.committed} committed effect(s); "
            f"{summary.not_applied} not applied"
        )
        self.summary = summary


__all__ = [
    "ReconciliationError",
    "RowValidationError",
    "IdentityAmbiguityWarning",
    "StoreConflictError",
    "StoreWriteError",
    "StoreUnavailableError",
    "ImportAbortedError",
]
