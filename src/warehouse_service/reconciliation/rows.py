"""Normalization of raw import rows into :class:`ImportRow` values."""
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .errors import RowValidationError


class ImportMode(str, Enum):
    """Reconciliation semantics selected for a whole upload."""

    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"
    DELETE = "delete"

    @property
    def creates_records(self) -> bool:
        return self in (ImportMode.ADD, ImportMode.REPLACE)


@dataclass(frozen=True)
class ImportRow:
    """One canonical spreadsheet row.

    ``index`` is the 1-based position of the row in the upload. ``name`` may
    only be empty for ``delete`` rows that carry an article.
    """

    index: int
    name: str
    article: str | None
    quantity: Decimal
    price: Decimal | None = None
    supplier: str | None = None
    warnings: tuple[str, ...] = ()


def _normalize_key(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip().lower()
    if "\ufeff" in text:
        text = text.replace("\ufeff", "")
    return text


_FIELD_ALIASES: dict[str, set[str]] = {
    "name": {"name", "product", "title", "наименование", "название", "товар"},
    "article": {"article", "sku", "артикул"},
    "quantity": {"quantity", "qty", "количество", "кол-во"},
    "price": {"price", "цена"},
    "supplier": {"supplier", "поставщик"},
}

_FIELD_ALIASES_NORMALIZED: dict[str, set[str]] = {
    key: {_normalize_key(alias) for alias in aliases}
    for key, aliases in _FIELD_ALIASES.items()
}

# Scales of the quantity and price columns.
QUANTITY_STEP = Decimal("0.001")
PRICE_STEP = Decimal("0.01")

_MISSING = object()


def _resolve_field(normalized: Mapping[str, Any], canonical: str) -> Any:
    for alias in _FIELD_ALIASES_NORMALIZED.get(canonical, set()):
        if alias in normalized:
            return normalized[alias]
    return _MISSING


def _text(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet readers hand numeric articles over as floats.
        value = int(value)
    return str(value).strip()


def parse_number(value: Any) -> Decimal | None:
    """Parse a spreadsheet number.

    Returns ``None`` for absent or blank values and raises :class:`ValueError`
    for anything that is not a finite number. Strings may use spaces as
    thousands separators and a comma as decimal separator.
    """

    if value is _MISSING or value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"not a finite number: {value!r}")
        parsed = Decimal(str(value))
    else:
        text = str(value).strip()
        if not text:
            return None
        text = text.replace("\u00a0", "").replace("\u202f", "").replace(" ", "")
        text = text.replace(",", ".")
        try:
            parsed = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"not a number: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return parsed


def _round(value: Decimal, step: Decimal) -> Decimal:
    try:
        return value.quantize(step, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"number out of range: {value}") from exc


def normalize_row(raw: Any, *, index: int, mode: ImportMode) -> ImportRow:
    """Turn one raw row mapping into an :class:`ImportRow`.

    Quantities are rounded to the stored scale (three decimals) and prices to
    two. Raises :class:`RowValidationError` when the row cannot take part in
    the import under ``mode``.
    """

    if not isinstance(raw, Mapping):
        raise RowValidationError(index, "unrecognised row format")
    normalized = {_normalize_key(key): value for key, value in raw.items()}

    name = _text(_resolve_field(normalized, "name"))
    article = _text(_resolve_field(normalized, "article")) or None
    identity = article or name or None
    if not name and not (mode is ImportMode.DELETE and article):
        raise RowValidationError(index, "missing product name", identity=identity)

    warnings: list[str] = []
    quantity_raw = _resolve_field(normalized, "quantity")
    if mode is ImportMode.DELETE:
        quantity = Decimal("0")
    else:
        try:
            parsed_quantity = parse_number(quantity_raw)
        except ValueError:
            if mode is ImportMode.REMOVE:
                raise RowValidationError(
                    index, f"quantity is not a number: {quantity_raw!r}", identity=identity
                ) from None
            warnings.append(f"row {index}: quantity {quantity_raw!r} is not a number, using 0")
            parsed_quantity = None
        if parsed_quantity is None:
            if mode is ImportMode.REMOVE:
                raise RowValidationError(
                    index, "quantity is required in remove mode", identity=identity
                )
            parsed_quantity = Decimal("0")
        if parsed_quantity < 0:
            raise RowValidationError(
                index, f"quantity must not be negative: {parsed_quantity}", identity=identity
            )
        try:
            quantity = _round(parsed_quantity, QUANTITY_STEP)
        except ValueError as exc:
            raise RowValidationError(index, str(exc), identity=identity) from None
        if quantity != parsed_quantity:
            warnings.append(f"row {index}: quantity {parsed_quantity} rounded to {quantity}")

    try:
        price = parse_number(_resolve_field(normalized, "price"))
        if price is not None:
            price = _round(price, PRICE_STEP)
    except ValueError:
        price = None
    if price is not None and price < 0:
        price = None

    supplier = _text(_resolve_field(normalized, "supplier")) or None
    return ImportRow(
        index=index,
        name=name,
        article=article,
        quantity=quantity,
        price=price,
        supplier=supplier,
        warnings=tuple(warnings),
    )


__all__ = [
    "PRICE_STEP",
    "QUANTITY_STEP",
    "ImportMode",
    "ImportRow",
    "normalize_row",
    "parse_number",
]
