from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from warehouse_service.models import PickingList, PickingListItem, Supplier, WarehouseItem
from warehouse_service.reconciliation import ImportAbortedError, ImportMode
from warehouse_service.reconciliation.engine import ReconciliationEngine, reconcile
from warehouse_service.reconciliation.store import PickingListRecordStore, WarehouseRecordStore


async def _seed(session: AsyncSession, **fields) -> WarehouseItem:
    item = WarehouseItem(**fields)
    session.add(item)
    await session.commit()
    return item


async def _items(factory: async_sessionmaker[AsyncSession]) -> dict[str, WarehouseItem]:
    async with factory() as fresh:
        result = await fresh.execute(select(WarehouseItem).order_by(WarehouseItem.id))
        return {item.article or item.name: item for item in result.scalars().all()}


async def test_remove_keeps_record_with_remaining_stock(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))

    summary = await reconcile(
        WarehouseRecordStore(session), [{"article": "X1", "name": "Bolt", "quantity": 3}], "remove"
    )

    items = await _items(session_factory)
    assert items["X1"].quantity == Decimal("2")
    assert (summary.updated, summary.deleted) == (1, 0)


async def test_remove_deletes_record_at_zero(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))

    summary = await reconcile(
        WarehouseRecordStore(session), [{"article": "X1", "name": "Bolt", "quantity": 5}], "remove"
    )

    assert "X1" not in await _items(session_factory)
    assert summary.deleted == 1
    assert summary.message == "Removal finished: updated 0, deleted 1"


async def test_remove_never_leaves_zero_quantity_records(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))
    await _seed(session, name="Nut", article="N1", quantity=Decimal("0"))
    await _seed(session, name="Washer", article="W1", quantity=Decimal("4"))

    await reconcile(
        WarehouseRecordStore(session),
        [
            {"article": "X1", "name": "Bolt", "quantity": 9},
            {"article": "N1", "name": "Nut", "quantity": 0},
            {"article": "W1", "name": "Washer", "quantity": 1},
        ],
        ImportMode.REMOVE,
    )

    items = await _items(session_factory)
    assert set(items) == {"W1"}
    assert all(item.quantity > 0 for item in items.values())


async def test_add_sums_duplicate_rows_onto_existing_record(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))

    summary = await reconcile(
        WarehouseRecordStore(session),
        [
            {"article": "X1", "name": "Bolt", "quantity": 7},
            {"article": "X1", "name": "Bolt", "quantity": 1},
        ],
        "add",
    )

    assert (await _items(session_factory))["X1"].quantity == Decimal("13")
    assert (summary.created, summary.updated) == (0, 1)


async def test_replace_creates_missing_record(session, session_factory) -> None:
    summary = await reconcile(
        WarehouseRecordStore(session), [{"article": "NEW1", "name": "Gear", "quantity": 4}], "replace"
    )

    created = (await _items(session_factory))["NEW1"]
    assert created.quantity == Decimal("4")
    assert created.name == "Gear"
    assert summary.created == 1


async def test_delete_ignores_missing_quantity(session, session_factory) -> None:
    await _seed(session, name="Spring", article="X2", quantity=Decimal("9"))

    summary = await reconcile(WarehouseRecordStore(session), [{"article": "X2"}], "delete")

    assert "X2" not in await _items(session_factory)
    assert summary.deleted == 1
    assert summary.errors == []


async def test_delete_without_match_is_a_noop(session, session_factory) -> None:
    summary = await reconcile(WarehouseRecordStore(session), [{"article": "GHOST"}], "delete")

    assert await _items(session_factory) == {}
    assert summary.committed == 0
    assert summary.errors == []
    assert summary.skipped == 1


async def test_replace_is_idempotent(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))
    rows = [
        {"article": "X1", "name": "Bolt", "quantity": 2},
        {"article": "X1", "name": "Bolt", "quantity": 3},
        {"name": "Loose nut", "quantity": 6},
    ]
    store = WarehouseRecordStore(session)

    await reconcile(store, rows, "replace")
    first = {key: item.quantity for key, item in (await _items(session_factory)).items()}
    await reconcile(store, rows, "replace")
    second = {key: item.quantity for key, item in (await _items(session_factory)).items()}

    assert first == second == {"X1": Decimal("5"), "Loose nut": Decimal("6")}


async def test_add_split_batches_match_combined_batch(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("1"))
    await _seed(session, name="Nut", article="Y1", quantity=Decimal("1"))
    store = WarehouseRecordStore(session)

    await reconcile(
        store,
        [
            {"article": "X1", "name": "Bolt", "quantity": 2},
            {"article": "X1", "name": "Bolt", "quantity": 3},
        ],
        "add",
    )
    await reconcile(store, [{"article": "Y1", "name": "Nut", "quantity": 2}], "add")
    await reconcile(store, [{"article": "Y1", "name": "Nut", "quantity": 3}], "add")

    items = await _items(session_factory)
    assert items["X1"].quantity == items["Y1"].quantity == Decimal("6")


async def test_repeating_an_add_upload_accumulates(session, session_factory) -> None:
    store = WarehouseRecordStore(session)
    rows = [{"article": "X1", "name": "Bolt", "quantity": 4}]

    await reconcile(store, rows, "add")
    await reconcile(store, rows, "add")

    assert (await _items(session_factory))["X1"].quantity == Decimal("8")


async def test_name_match_is_case_insensitive(session, session_factory) -> None:
    await _seed(session, name="Гайка М8", quantity=Decimal("2"))

    summary = await reconcile(
        WarehouseRecordStore(session), [{"name": "гайка м8", "quantity": 3}], "add"
    )

    items = await _items(session_factory)
    assert list(items) == ["Гайка М8"]
    assert items["Гайка М8"].quantity == Decimal("5")
    assert summary.updated == 1


async def test_article_miss_falls_back_to_name_of_record_without_article(
    session, session_factory
) -> None:
    await _seed(session, name="Bolt", quantity=Decimal("2"))

    await reconcile(
        WarehouseRecordStore(session), [{"name": "BOLT", "article": "X1", "quantity": 1}], "add"
    )

    items = await _items(session_factory)
    assert list(items) == ["Bolt"]
    assert items["Bolt"].quantity == Decimal("3")
    assert items["Bolt"].article is None


async def test_name_match_with_other_article_is_not_merged(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="OLD", quantity=Decimal("2"))

    summary = await reconcile(
        WarehouseRecordStore(session), [{"name": "Bolt", "article": "NEW", "quantity": 1}], "add"
    )

    items = await _items(session_factory)
    assert items["OLD"].quantity == Decimal("2")
    assert items["NEW"].quantity == Decimal("1")
    assert summary.created == 1
    assert len(summary.warnings) == 1


async def test_duplicate_articles_update_lowest_id_and_warn(session, session_factory) -> None:
    first = await _seed(session, name="Bolt", article="X1", quantity=Decimal("1"))
    second = await _seed(session, name="Bolt copy", article="X1", quantity=Decimal("1"))

    summary = await reconcile(
        WarehouseRecordStore(session), [{"article": "X1", "name": "Bolt", "quantity": 5}], "add"
    )

    async with session_factory() as fresh:
        assert (await fresh.get(WarehouseItem, first.id)).quantity == Decimal("6")
        assert (await fresh.get(WarehouseItem, second.id)).quantity == Decimal("1")
    assert summary.warnings and "2 records share article" in summary.warnings[0]


async def test_invalid_rows_are_reported_and_skipped(session, session_factory) -> None:
    summary = await reconcile(
        WarehouseRecordStore(session),
        [
            {"name": "", "article": "X9", "quantity": 1},
            {"name": "Bolt", "quantity": "abc"},
            {"name": "Nut", "quantity": 2},
        ],
        "remove",
    )

    assert [error.row for error in summary.errors] == [1, 2]
    assert summary.errors[0].identity == "X9"
    assert summary.skipped == 3
    assert await _items(session_factory) == {}


async def test_low_stock_records_are_reported_after_commit(session) -> None:
    item = await _seed(
        session, name="Bolt", article="X1", quantity=Decimal("10"), low_stock_threshold=Decimal("3")
    )

    summary = await reconcile(
        WarehouseRecordStore(session), [{"article": "X1", "name": "Bolt", "quantity": 8}], "remove"
    )

    assert summary.low_stock == [item.id]


async def test_preview_does_not_write(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))
    engine = ReconciliationEngine(WarehouseRecordStore(session))

    preview = await engine.preview(
        [
            {"article": "X1", "name": "Bolt", "quantity": 5},
            {"article": "X2", "name": "Nut", "quantity": 1},
            {"name": "", "quantity": 1},
        ],
        "remove",
    )

    assert [(effect.action, effect.resulting_quantity) for effect in preview.effects] == [
        ("delete", Decimal("0")),
        ("noop", None),
    ]
    assert preview.effects[0].current_quantity == Decimal("5")
    assert preview.skipped == 1
    assert (await _items(session_factory))["X1"].quantity == Decimal("5")


async def test_concurrent_edit_is_not_lost(session, session_factory) -> None:
    item = await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))

    class RacingStore(WarehouseRecordStore):
        raced = False

        async def update(self, record_id, fields):
            if not self.raced:
                self.raced = True
                async with session_factory() as other:
                    competing = await other.get(WarehouseItem, record_id)
                    competing.quantity = Decimal("10")
                    await other.commit()
            return await super().update(record_id, fields)

    summary = await reconcile(
        RacingStore(session), [{"article": "X1", "name": "Bolt", "quantity": 3}], "add"
    )

    async with session_factory() as fresh:
        assert (await fresh.get(WarehouseItem, item.id)).quantity == Decimal("13")
    assert summary.updated == 1
    assert summary.errors == []


@pytest.fixture()
async def picking_lists(session) -> tuple[PickingList, PickingList]:
    first = PickingList(name="Monday")
    second = PickingList(name="Tuesday")
    session.add_all([first, second])
    await session.commit()
    return first, second


async def test_picking_list_imports_are_scoped(session, session_factory, picking_lists) -> None:
    monday, tuesday = picking_lists
    session.add(PickingListItem(picking_list_id=tuesday.id, name="Bolt", article="X1", quantity=Decimal("4")))
    await session.commit()

    store = PickingListRecordStore(session, monday.id)
    summary = await reconcile(
        store,
        [
            {"article": "X1", "name": "Bolt", "quantity": 2, "supplier": "Acme"},
            {"article": "X2", "name": "Nut", "quantity": 1, "supplier": "acme "},
        ],
        "add",
    )

    assert summary.created == 2
    assert summary.suppliers_created == 1
    async with session_factory() as fresh:
        rows = (
            await fresh.execute(select(PickingListItem).order_by(PickingListItem.id))
        ).scalars().all()
        suppliers = (await fresh.execute(select(Supplier))).scalars().all()
    by_list = {(row.picking_list_id, row.article): row for row in rows}
    assert by_list[(tuesday.id, "X1")].quantity == Decimal("4")
    assert by_list[(monday.id, "X1")].quantity == Decimal("2")
    assert [supplier.name for supplier in suppliers] == ["Acme"]
    assert {row.supplier_id for row in rows if row.picking_list_id == monday.id} == {suppliers[0].id}
    assert not any(row.collected or row.paid for row in rows)


async def test_picking_list_remove_deletes_emptied_items(session, session_factory, picking_lists) -> None:
    monday, _ = picking_lists
    session.add(PickingListItem(picking_list_id=monday.id, name="Bolt", article="X1", quantity=Decimal("2")))
    await session.commit()

    summary = await reconcile(
        PickingListRecordStore(session, monday.id),
        [{"article": "X1", "name": "Bolt", "quantity": 2}],
        "remove",
    )

    assert summary.deleted == 1
    async with session_factory() as fresh:
        assert (await fresh.execute(select(PickingListItem))).scalars().all() == []


async def test_remove_below_stored_precision_deletes_record(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("5"))

    summary = await reconcile(
        WarehouseRecordStore(session),
        [{"article": "X1", "name": "Bolt", "quantity": "4.9999"}],
        "remove",
    )

    assert "X1" not in await _items(session_factory)
    assert (summary.updated, summary.deleted) == (0, 1)
    assert summary.warnings == ["row 1: quantity 4.9999 rounded to 5.000"]


async def test_replace_with_unparsable_quantity_is_flagged(session, session_factory) -> None:
    await _seed(session, name="Bolt", article="X1", quantity=Decimal("1234"))

    summary = await reconcile(
        WarehouseRecordStore(session),
        [{"article": "X1", "name": "Bolt", "quantity": "1.234,5"}],
        "replace",
    )

    assert (await _items(session_factory))["X1"].quantity == Decimal("0")
    assert summary.updated == 1
    assert summary.warnings == ["row 1: quantity '1.234,5' is not a number, using 0"]


async def test_missing_table_aborts_import_after_committed_rows(
    session, db_engine: AsyncEngine
) -> None:
    class OutageStore(WarehouseRecordStore):
        async def commit(self) -> None:
            await super().commit()
            async with db_engine.begin() as conn:
                await conn.execute(text("DROP TABLE warehouse_items"))

    with pytest.raises(ImportAbortedError) as excinfo:
        await reconcile(
            OutageStore(session),
            [
                {"article": "A1", "name": "First", "quantity": 1},
                {"article": "A2", "name": "Second", "quantity": 1},
                {"article": "A3", "name": "Third", "quantity": 1},
            ],
            "add",
        )

    summary = excinfo.value.summary
    assert summary.aborted
    assert summary.created == 1
    assert summary.committed == 1
    assert summary.not_applied == 2
    assert "no such table" in str(excinfo.value.__cause__)


async def test_supplier_created_concurrently_becomes_row_error(
    session, session_factory, picking_lists
) -> None:
    monday, _ = picking_lists

    class RacingSupplierStore(PickingListRecordStore):
        async def _find_supplier(self, name):
            found = await super()._find_supplier(name)
            async with session_factory() as other:
                other.add(Supplier(name=name))
                await other.commit()
            return found

    summary = await reconcile(
        RacingSupplierStore(session, monday.id),
        [
            {"article": "X1", "name": "Bolt", "quantity": 2, "supplier": "Globex"},
            {"article": "X2", "name": "Nut", "quantity": 1},
        ],
        "add",
    )

    assert summary.created == 1
    assert summary.skipped == 1
    assert summary.suppliers_created == 0
    assert summary.errors[0].row == 1
    assert summary.errors[0].identity == "article 'X1'"
    assert "UNIQUE constraint failed" in summary.errors[0].reason
    async with session_factory() as fresh:
        items = (await fresh.execute(select(PickingListItem))).scalars().all()
        suppliers = (await fresh.execute(select(Supplier))).scalars().all()
    assert [item.article for item in items] == ["X2"]
    assert [supplier.name for supplier in suppliers] == ["Globex"]
