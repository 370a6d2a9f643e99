"""Business logic for interacting with the database."""
from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, and_, delete, func, or_, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .models import PickingList, PickingListItem, Supplier, WarehouseItem
from .reconciliation.aggregate import normalize_name

_NON_NULLABLE_FIELDS = {"name", "quantity", "collected", "paid"}
PICKING_LIST_LIMIT = 100


def _apply_changes(target: Any, changes: dict[str, Any]) -> None:
    for field, value in changes.items():
        if value is None and field in _NON_NULLABLE_FIELDS:
            continue
        setattr(target, field, value)


def _warehouse_filters(stmt: Select, *, search: str | None, category: str | None) -> Select:
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                WarehouseItem.name.ilike(pattern),
                WarehouseItem.name_key.like(f"%{normalize_name(search)}%"),
                WarehouseItem.article.ilike(pattern),
            )
        )
    if category:
        stmt = stmt.where(WarehouseItem.category == category.strip())
    return stmt


async def create_warehouse_item(
    session: AsyncSession, data: schemas.WarehouseItemCreate
) -> WarehouseItem:
    item = WarehouseItem(**data.model_dump())
    session.add(item)
    await session.flush()
    return item


async def list_warehouse_items(
    session: AsyncSession,
    *,
    search: str | None = None,
    category: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[Sequence[WarehouseItem], schemas.Pagination]:
    count_stmt = _warehouse_filters(
        select(func.count()).select_from(WarehouseItem), search=search, category=category
    )
    total = (await session.execute(count_stmt)).scalar_one()

    stmt = (
        _warehouse_filters(select(WarehouseItem), search=search, category=category)
        .order_by(WarehouseItem.name_key, WarehouseItem.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await session.execute(stmt)
    pagination = schemas.Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if limit else 0,
    )
    return result.scalars().all(), pagination


async def list_warehouse_item_ids(
    session: AsyncSession, *, search: str | None = None, category: str | None = None
) -> Sequence[int]:
    stmt = _warehouse_filters(
        select(WarehouseItem.id), search=search, category=category
    ).order_by(WarehouseItem.name_key, WarehouseItem.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_warehouse_item(session: AsyncSession, item_id: int) -> WarehouseItem:
    item = await session.get(WarehouseItem, item_id)
    if item is None:
        raise NoResultFound(f"Warehouse item {item_id} not found")
    return item


async def update_warehouse_item(
    session: AsyncSession, item: WarehouseItem, data: schemas.WarehouseItemUpdate
) -> WarehouseItem:
    _apply_changes(item, data.model_dump(exclude_unset=True))
    await session.flush()
    return item


async def delete_warehouse_item(session: AsyncSession, item: WarehouseItem) -> None:
    await session.delete(item)
    await session.flush()


async def delete_warehouse_items(session: AsyncSession, ids: Sequence[int]) -> int:
    result = await session.execute(delete(WarehouseItem).where(WarehouseItem.id.in_(ids)))
    return result.rowcount or 0


async def list_categories(session: AsyncSession) -> list[str]:
    stmt = select(WarehouseItem.category).where(WarehouseItem.category.is_not(None)).distinct()
    result = await session.execute(stmt)
    categories = {value.strip() for value in result.scalars().all() if value and value.strip()}
    return sorted(categories)


async def list_low_stock_items(session: AsyncSession) -> Sequence[WarehouseItem]:
    stmt = (
        select(WarehouseItem)
        .where(
            and_(
                WarehouseItem.low_stock_threshold.is_not(None),
                WarehouseItem.low_stock_threshold > 0,
                WarehouseItem.quantity <= WarehouseItem.low_stock_threshold,
            )
        )
        .order_by(WarehouseItem.quantity, WarehouseItem.name_key)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_supplier(session: AsyncSession, data: schemas.SupplierCreate) -> Supplier:
    existing = await find_supplier_by_name(session, data.name)
    if existing is not None:
        raise ValueError(f"Supplier {data.name!r} already exists")
    supplier = Supplier(name=data.name)
    session.add(supplier)
    await session.flush()
    return supplier


async def find_supplier_by_name(session: AsyncSession, name: str) -> Supplier | None:
    stmt = select(Supplier).where(Supplier.name_key == normalize_name(name))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_suppliers(session: AsyncSession) -> Sequence[Supplier]:
    result = await session.execute(select(Supplier).order_by(Supplier.name_key))
    return result.scalars().all()


async def get_supplier(session: AsyncSession, supplier_id: int) -> Supplier:
    supplier = await session.get(Supplier, supplier_id)
    if supplier is None:
        raise NoResultFound(f"Supplier {supplier_id} not found")
    return supplier


async def create_picking_list(
    session: AsyncSession, data: schemas.PickingListCreate
) -> PickingList:
    picking_list = PickingList(
        date=data.date or datetime.now(timezone.utc),
        name=data.name,
    )
    session.add(picking_list)
    await session.flush()
    return picking_list


async def list_picking_lists(
    session: AsyncSession,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> Sequence[PickingList]:
    stmt = select(PickingList)
    if start_date is not None:
        stmt = stmt.where(PickingList.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(PickingList.date <= end_date)
    stmt = stmt.order_by(PickingList.date.desc(), PickingList.id.desc()).limit(PICKING_LIST_LIMIT)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_picking_list(session: AsyncSession, picking_list_id: int) -> PickingList:
    picking_list = await session.get(PickingList, picking_list_id)
    if picking_list is None:
        raise NoResultFound(f"Picking list {picking_list_id} not found")
    return picking_list


async def list_picking_list_items(
    session: AsyncSession, picking_list_id: int
) -> Sequence[PickingListItem]:
    stmt = (
        select(PickingListItem)
        .where(PickingListItem.picking_list_id == picking_list_id)
        .order_by(PickingListItem.created_at, PickingListItem.id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def delete_picking_list(session: AsyncSession, picking_list: PickingList) -> None:
    await session.execute(
        delete(PickingListItem).where(PickingListItem.picking_list_id == picking_list.id)
    )
    await session.delete(picking_list)
    await session.flush()


async def create_picking_list_item(
    session: AsyncSession, data: schemas.PickingListItemCreate
) -> PickingListItem:
    await get_picking_list(session, data.picking_list_id)
    if data.supplier_id is not None:
        await get_supplier(session, data.supplier_id)
    item = PickingListItem(**data.model_dump(), collected=False, paid=False)
    session.add(item)
    await session.flush()
    return item


async def get_picking_list_item(session: AsyncSession, item_id: int) -> PickingListItem:
    item = await session.get(PickingListItem, item_id)
    if item is None:
        raise NoResultFound(f"Picking list item {item_id} not found")
    return item


async def update_picking_list_item(
    session: AsyncSession, item: PickingListItem, data: schemas.PickingListItemUpdate
) -> PickingListItem:
    changes = data.model_dump(exclude_unset=True)
    if changes.get("supplier_id") is not None:
        await get_supplier(session, changes["supplier_id"])
    _apply_changes(item, changes)
    await session.flush()
    return item


async def delete_picking_list_item(session: AsyncSession, item: PickingListItem) -> None:
    await session.delete(item)
    await session.flush()


__all__ = [name for name in globals() if not name.startswith("_")]
