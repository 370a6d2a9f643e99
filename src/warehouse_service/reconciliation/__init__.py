"""Spreadsheet import reconciliation.

The pure stages (normalization, aggregation, resolution, policy) are
re-exported here. The store and engine live in :mod:`.store` and
:mod:`.engine`; they depend on the ORM models and are imported from there.
"""
from __future__ import annotations

from .aggregate import AggregatedRow, aggregate_rows, identity_key, normalize_name
from .errors import (
    IdentityAmbiguityWarning,
    ImportAbortedError,
    ReconciliationError,
    RowValidationError,
    StoreConflictError,
    StoreUnavailableError,
    StoreWriteError,
)
from .policy import Delete, Effect, NoOp, Upsert, decide_effect
from .resolve import MatchKind, Resolution, resolve_identity
from .rows import ImportMode, ImportRow, normalize_row, parse_number

__all__ = [
    "AggregatedRow",
    "Delete",
    "Effect",
    "IdentityAmbiguityWarning",
    "ImportAbortedError",
    "ImportMode",
    "ImportRow",
    "MatchKind",
    "NoOp",
    "ReconciliationError",
    "Resolution",
    "RowValidationError",
    "StoreConflictError",
    "StoreUnavailableError",
    "StoreWriteError",
    "Upsert",
    "aggregate_rows",
    "decide_effect",
    "identity_key",
    "normalize_name",
    "normalize_row",
    "parse_number",
    "resolve_identity",
]
