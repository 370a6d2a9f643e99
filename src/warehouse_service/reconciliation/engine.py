"""Apply an import batch to a record store and report what happened.

The engine runs normalization, aggregation, identity resolution and the
reconciliation policy, then applies the resulting effects one identity at a
time. Each effect is committed on its own (best-effort commit): the summary
only counts committed effects, and a store outage stops the batch with
:class:`ImportAbortedError` carrying the partial summary.

Cancelling a running import keeps every effect committed before the
cancellation. Re-running the same upload is idempotent for ``replace`` and
``delete``; under ``add`` it adds the quantities a second time.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .aggregate import AggregatedRow, aggregate_rows
from .errors import (
    ImportAbortedError,
    RowValidationError,
    StoreConflictError,
    StoreUnavailableError,
    StoreWriteError,
)
from .policy import Delete, Effect, NoOp, Upsert, decide_effect
from .resolve import Resolution, resolve_identity
from .rows import ImportMode, ImportRow, normalize_row
from .store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowError:
    row: int
    reason: str
    identity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "reason": self.reason, "identity": self.identity}


@dataclass
class ImportSummary:
    """Counts of committed effects for one import batch.

    ``skipped`` counts rows rejected during normalization, identities that
    resolved to no-op, and identities whose write failed.
    """

    mode: ImportMode
    scope: str = "warehouse"
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    low_stock: list[int] = field(default_factory=list)
    suppliers_created: int = 0
    identities: int = 0
    not_applied: int = 0
    aborted: bool = False

    @property
    def committed(self) -> int:
        return self.created + self.updated + self.deleted

    @property
    def message(self) -> str:
        if self.mode in (ImportMode.ADD, ImportMode.REPLACE):
            text = f"Import finished: created {self.created}, updated {self.updated}"
        elif self.mode is ImportMode.REMOVE:
            text = f"Removal finished: updated {self.updated}, deleted {self.deleted}"
        else:
            text = f"Deletion finished: deleted {self.deleted} of {self.identities}"
        if self.skipped:
            text += f", skipped {self.skipped}"
        if self.suppliers_created:
            text += f", suppliers created {self.suppliers_created}"
        if self.aborted:
            text += (
                f"; aborted after {self.committed} committed change(s), "
                f"{self.not_applied} not applied"
            )
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "scope": self.scope,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "errors": [error.to_dict() for error in self.errors],
            "warnings": list(self.warnings),
            "low_stock": list(self.low_stock),
            "suppliers_created": self.suppliers_created,
            "identities": self.identities,
            "committed": self.committed,
            "not_applied": self.not_applied,
            "aborted": self.aborted,
            "message": self.message,
        }


@dataclass(frozen=True)
class PlannedEffect:
    """What an import would do to one identity, computed without writing."""

    identity: str
    rows: tuple[int, ...]
    action: str
    record_id: int | None
    name: str
    article: str | None
    current_quantity: Decimal | None
    resulting_quantity: Decimal | None
    match: str
    warnings: tuple[str, ...] = ()


@dataclass
class ImportPreview:
    mode: ImportMode
    effects: list[PlannedEffect] = field(default_factory=list)
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _describe(effect: Effect) -> str:
    if isinstance(effect, Upsert):
        return "create" if effect.creates else "update"
    if isinstance(effect, Delete):
        return "delete"
    return "noop"


class ReconciliationEngine:
    """Reconcile spreadsheet rows against one store scope."""

    def __init__(self, store: RecordStore, *, max_retries: int = 3) -> None:
        self.store = store
        self.max_retries = max_retries

    def normalize(
        self, rows: Iterable[Any], mode: ImportMode
    ) -> tuple[list[ImportRow], list[RowError]]:
        normalized: list[ImportRow] = []
        errors: list[RowError] = []
        for index, raw in enumerate(rows, start=1):
            try:
                normalized.append(normalize_row(raw, index=index, mode=mode))
            except RowValidationError as exc:
                logger.debug("Skipping row %s: %s", exc.row, exc.reason)
                errors.append(RowError(exc.row, exc.reason, exc.identity))
        return normalized, errors

    def prepare(
        self, rows: Iterable[Any], mode: ImportMode
    ) -> tuple[dict[Any, AggregatedRow], list[RowError], list[str]]:
        """Normalize and aggregate ``rows``; also return the per-row warnings."""

        normalized, errors = self.normalize(rows, mode)
        warnings = [warning for row in normalized for warning in row.warnings]
        for warning in warnings:
            logger.warning("%s", warning)
        return aggregate_rows(normalized), errors, warnings

    async def preview(self, rows: Iterable[Any], mode: ImportMode | str) -> ImportPreview:
        """Plan the effects of an import without writing to the store."""

        mode = ImportMode(mode)
        aggregated, errors, warnings = self.prepare(rows, mode)
        preview = ImportPreview(
            mode=mode, skipped=len(errors), errors=errors, warnings=warnings
        )
        for row in aggregated.values():
            resolution = await resolve_identity(self.store, row)
            effect = decide_effect(mode, resolution, row)
            preview.effects.append(self._plan(row, resolution, effect))
        return preview

    @staticmethod
    def _plan(row: AggregatedRow, resolution: Resolution, effect: Effect) -> PlannedEffect:
        record = resolution.record
        current = record.quantity if record is not None else None
        if isinstance(effect, Upsert):
            resulting = effect.quantity
        elif isinstance(effect, Delete):
            resulting = Decimal("0")
        else:
            resulting = current
        return PlannedEffect(
            identity=row.identity,
            rows=tuple(row.rows),
            action=_describe(effect),
            record_id=record.id if record is not None else None,
            name=record.name if record is not None else row.name,
            article=record.article if record is not None else row.article,
            current_quantity=current,
            resulting_quantity=resulting,
            match=resolution.kind.value,
            warnings=tuple(str(warning) for warning in resolution.warnings),
        )

    async def run(self, rows: Iterable[Any], mode: ImportMode | str) -> ImportSummary:
        """Apply ``rows`` under ``mode`` and return the summary.

        Raises :class:`ImportAbortedError` when the store becomes unavailable;
        effects committed before that point stay committed.
        """

        mode = ImportMode(mode)
        rows = list(rows)
        scope = getattr(self.store, "scope", "warehouse")
        logger.info("Import started: mode=%s scope=%s rows=%d", mode.value, scope, len(rows))

        aggregated, errors, warnings = self.prepare(rows, mode)
        summary = ImportSummary(mode=mode, scope=scope, identities=len(aggregated))
        summary.errors.extend(errors)
        summary.warnings.extend(warnings)
        summary.skipped += len(errors)

        pending = list(aggregated.values())
        for position, row in enumerate(pending):
            try:
                await self._apply(row, mode, summary)
            except StoreUnavailableError as exc:
                summary.aborted = True
                summary.not_applied = len(pending) - position
                summary.suppliers_created = getattr(self.store, "suppliers_created", 0)
                logger.error("Import aborted at %s: %s (%s)", row.identity, exc, summary.message)
                await self._rollback_quietly()
                raise ImportAbortedError(summary) from exc

        summary.suppliers_created = getattr(self.store, "suppliers_created", 0)
        logger.info("Import finished (%s): %s", scope, summary.message)
        return summary

    async def _apply(self, row: AggregatedRow, mode: ImportMode, summary: ImportSummary) -> None:
        attempt = 0
        reported: set[str] = set()
        while True:
            resolution = await resolve_identity(self.store, row)
            # Warnings are kept even when the write below fails.
            for warning in resolution.warnings:
                if str(warning) not in reported:
                    reported.add(str(warning))
                    logger.warning("%s (rows %s)", warning, row.rows)
                    summary.warnings.append(str(warning))
            effect = decide_effect(mode, resolution, row)
            try:
                record = await self._execute(effect)
                await self.store.commit()
            except StoreConflictError as exc:
                await self.store.rollback()
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(
                        "Giving up on %s after %d conflicting writes", row.identity, attempt
                    )
                    summary.errors.append(
                        RowError(
                            row.first_row,
                            f"concurrent update, gave up after {self.max_retries} retries",
                            row.identity,
                        )
                    )
                    summary.skipped += 1
                    return
                logger.warning(
                    "Conflicting write on %s (%s), retry %d/%d",
                    row.identity,
                    exc,
                    attempt,
                    self.max_retries,
                )
                continue
            except StoreWriteError as exc:
                await self.store.rollback()
                logger.warning("Write rejected for %s: %s", row.identity, exc)
                summary.errors.append(RowError(row.first_row, str(exc), row.identity))
                summary.skipped += 1
                return
            break

        self._tally(effect, summary)
        if record is not None and getattr(record, "is_low_stock", False):
            summary.low_stock.append(record.id)

    async def _execute(self, effect: Effect) -> Any:
        if isinstance(effect, Upsert):
            if effect.record_id is None:
                return await self.store.create(effect.fields)
            return await self.store.update(effect.record_id, effect.fields)
        if isinstance(effect, Delete):
            await self.store.delete(effect.record_id)
        return None

    @staticmethod
    def _tally(effect: Effect, summary: ImportSummary) -> None:
        if isinstance(effect, Upsert):
            if effect.creates:
                summary.created += 1
            else:
                summary.updated += 1
        elif isinstance(effect, Delete):
            summary.deleted += 1
        elif isinstance(effect, NoOp):
            logger.debug("No-op: %s", effect.reason)
            summary.skipped += 1

    async def _rollback_quietly(self) -> None:
        try:
            await self.store.rollback()
        except StoreUnavailableError as exc:
            logger.warning("Rollback after store failure also failed: %s", exc)


async def reconcile(
    store: RecordStore,
    rows: Iterable[Mapping[str, Any]],
    mode: ImportMode | str = ImportMode.ADD,
    *,
    max_retries: int = 3,
) -> ImportSummary:
    """Shortcut for ``ReconciliationEngine(store).run(rows, mode)``."""

    return await ReconciliationEngine(store, max_retries=max_retries).run(rows, mode)


__all__ = [
    "ImportPreview",
    "ImportSummary",
    "PlannedEffect",
    "ReconciliationEngine",
    "RowError",
    "reconcile",
]
