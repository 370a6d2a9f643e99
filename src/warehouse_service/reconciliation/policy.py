"""Pure decision table mapping a resolved row and a mode to one effect."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union

from .aggregate import AggregatedRow
from .resolve import Resolution
from .rows import ImportMode


@dataclass(frozen=True)
class Upsert:
    """Create a record (``record_id is None``) or update the given one."""

    record_id: int | None
    fields: dict[str, Any] = field(default_factory=dict)
    previous_quantity: Decimal | None = None

    @property
    def creates(self) -> bool:
        return self.record_id is None

    @property
    def quantity(self) -> Decimal | None:
        return self.fields.get("quantity")


@dataclass(frozen=True)
class Delete:
    record_id: int
    previous_quantity: Decimal | None = None


@dataclass(frozen=True)
class NoOp:
    reason: str


Effect = Union[Upsert, Delete, NoOp]


def _create_fields(row: AggregatedRow, quantity: Decimal) -> dict[str, Any]:
    fields: dict[str, Any] = {"name": row.name, "article": row.article, "quantity": quantity}
    if row.price is not None:
        fields["price"] = row.price
    if row.supplier:
        fields["supplier"] = row.supplier
    return fields


def _update_fields(row: AggregatedRow, quantity: Decimal) -> dict[str, Any]:
    fields: dict[str, Any] = {"quantity": quantity}
    if row.price is not None:
        fields["price"] = row.price
    if row.supplier:
        fields["supplier"] = row.supplier
    return fields


def decide_effect(mode: ImportMode, resolution: Resolution, row: AggregatedRow) -> Effect:
    """Return the single effect ``row`` has on the store under ``mode``.

    ``remove`` never creates and never leaves a record at zero; ``add`` and
    ``replace`` never delete, even when the result is zero; ``delete`` only
    looks at identity.
    """

    record = resolution.record
    if record is None:
        if mode.creates_records:
            return Upsert(None, _create_fields(row, row.net_quantity))
        return NoOp(f"no record matches {row.identity}")

    current = record.quantity or Decimal("0")
    if mode is ImportMode.ADD:
        return Upsert(record.id, _update_fields(row, current + row.net_quantity), current)
    if mode is ImportMode.REPLACE:
        return Upsert(record.id, _update_fields(row, row.net_quantity), current)
    if mode is ImportMode.REMOVE:
        remaining = max(current - row.net_quantity, Decimal("0"))
        if remaining == 0:
            return Delete(record.id, current)
        return Upsert(record.id, {"quantity": remaining}, current)
    if mode is ImportMode.DELETE:
        return Delete(record.id, current)
    raise ValueError(f"Unsupported import mode: {mode!r}")


__all__ = ["Delete", "Effect", "NoOp", "Upsert", "decide_effect"]
