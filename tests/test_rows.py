from decimal import Decimal

import pytest

from warehouse_service.reconciliation import (
    ImportMode,
    RowValidationError,
    normalize_row,
    parse_number,
)


def test_normalize_row_reads_aliased_columns() -> None:
    row = normalize_row(
        {
            "\ufeffНаименование": "  Парфюм 100 мл ",
            "Артикул": 35515.0,
            "Количество": "1 234,5",
            "Цена": "990",
            "Поставщик": " ООО Ромашка ",
        },
        index=3,
        mode=ImportMode.ADD,
    )

    assert row.index == 3
    assert row.name == "Парфюм 100 мл"
    assert row.article == "35515"
    assert row.quantity == Decimal("1234.5")
    assert row.price == Decimal("990")
    assert row.supplier == "ООО Ромашка"


def test_blank_article_is_treated_as_absent() -> None:
    row = normalize_row({"name": "Bolt", "article": "   ", "quantity": 2}, index=1, mode=ImportMode.ADD)
    assert row.article is None


def test_missing_name_is_a_row_error() -> None:
    with pytest.raises(RowValidationError) as excinfo:
        normalize_row({"article": "X1", "quantity": 1}, index=7, mode=ImportMode.ADD)
    assert excinfo.value.row == 7
    assert excinfo.value.identity == "X1"
    assert "name" in excinfo.value.reason


def test_delete_mode_accepts_article_without_name_or_quantity() -> None:
    row = normalize_row({"article": "X2"}, index=1, mode=ImportMode.DELETE)
    assert row.article == "X2"
    assert row.name == ""
    assert row.quantity == Decimal("0")


def test_delete_mode_still_needs_some_identity() -> None:
    with pytest.raises(RowValidationError):
        normalize_row({"quantity": 3}, index=1, mode=ImportMode.DELETE)


@pytest.mark.parametrize("mode", [ImportMode.ADD, ImportMode.REPLACE])
@pytest.mark.parametrize("quantity", [None, "", "n/a"])
def test_missing_or_unparsable_quantity_defaults_to_zero(mode: ImportMode, quantity) -> None:
    raw = {"name": "Bolt"}
    if quantity is not None:
        raw["quantity"] = quantity
    row = normalize_row(raw, index=1, mode=mode)
    assert row.quantity == Decimal("0")


@pytest.mark.parametrize("quantity", [None, "", "n/a"])
def test_remove_mode_requires_a_quantity(quantity) -> None:
    raw = {"name": "Bolt"}
    if quantity is not None:
        raw["quantity"] = quantity
    with pytest.raises(RowValidationError):
        normalize_row(raw, index=1, mode=ImportMode.REMOVE)


def test_negative_quantity_is_rejected() -> None:
    with pytest.raises(RowValidationError):
        normalize_row({"name": "Bolt", "quantity": -2}, index=1, mode=ImportMode.ADD)


def test_unparsable_or_negative_price_is_dropped() -> None:
    row = normalize_row({"name": "Bolt", "quantity": 1, "price": "cheap"}, index=1, mode=ImportMode.ADD)
    assert row.price is None
    row = normalize_row({"name": "Bolt", "quantity": 1, "price": -5}, index=1, mode=ImportMode.ADD)
    assert row.price is None


def test_non_mapping_row_is_rejected() -> None:
    with pytest.raises(RowValidationError):
        normalize_row(["Bolt", 1], index=1, mode=ImportMode.ADD)


def test_parse_number_rejects_non_finite_and_booleans() -> None:
    assert parse_number("  ") is None
    assert parse_number(3) == Decimal("3")
    assert parse_number(2.5) == Decimal("2.5")
    for value in (True, float("nan"), float("inf"), "Infinity", "1e"):
        with pytest.raises(ValueError):
            parse_number(value)


def test_quantity_and_price_are_rounded_to_stored_scale() -> None:
    row = normalize_row(
        {"name": "Bolt", "quantity": "4,9999", "price": "10.005"}, index=4, mode=ImportMode.REMOVE
    )

    assert row.quantity == Decimal("5.000")
    assert row.price == Decimal("10.01")
    assert row.warnings == ("row 4: quantity 4.9999 rounded to 5.000",)


def test_unparsable_quantity_leaves_a_warning() -> None:
    row = normalize_row({"name": "Bolt", "quantity": "1.234,5"}, index=2, mode=ImportMode.REPLACE)

    assert row.quantity == Decimal("0")
    assert row.warnings == ("row 2: quantity '1.234,5' is not a number, using 0",)


def test_clean_row_has_no_warnings() -> None:
    row = normalize_row({"name": "Bolt", "quantity": "2.5"}, index=1, mode=ImportMode.ADD)

    assert row.warnings == ()
