"""Collapse repeated rows of one upload into one net row per identity."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from .rows import ImportRow

IdentityKey = tuple[str, str]


def normalize_name(name: str) -> str:
    return name.strip().casefold()


def identity_key(*, article: str | None, name: str) -> IdentityKey:
    """Return the article when present, otherwise the normalized name."""

    if article:
        return ("article", article)
    return ("name", normalize_name(name))


def describe_identity(key: IdentityKey) -> str:
    kind, value = key
    return f"{kind} {value!r}"


@dataclass
class AggregatedRow:
    """Net effect of every row sharing one identity key."""

    key: IdentityKey
    name: str
    article: str | None
    net_quantity: Decimal = Decimal("0")
    price: Decimal | None = None
    supplier: str | None = None
    rows: list[int] = field(default_factory=list)

    @property
    def first_row(self) -> int:
        return self.rows[0]

    @property
    def identity(self) -> str:
        return describe_identity(self.key)


def aggregate_rows(rows: Iterable[ImportRow]) -> dict[IdentityKey, AggregatedRow]:
    """Group ``rows`` by identity key in first-seen order.

    Quantities are summed; name, price and supplier take the last non-empty
    value seen for the key.
    """

    aggregated: dict[IdentityKey, AggregatedRow] = {}
    for row in rows:
        key = identity_key(article=row.article, name=row.name)
        entry = aggregated.get(key)
        if entry is None:
            entry = AggregatedRow(key=key, name=row.name, article=row.article)
            aggregated[key] = entry
        entry.net_quantity += row.quantity
        entry.rows.append(row.index)
        if row.name:
            entry.name = row.name
        if row.price is not None:
            entry.price = row.price
        if row.supplier:
            entry.supplier = row.supplier
    return aggregated


__all__ = [
    "AggregatedRow",
    "IdentityKey",
    "aggregate_rows",
    "describe_identity",
    "identity_key",
    "normalize_name",
]
