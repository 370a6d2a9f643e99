"""Record store interface used by the reconciliation engine, with SQLAlchemy implementations."""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Protocol, Union

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..models import PickingListItem, Supplier, WarehouseItem
from .aggregate import normalize_name
from .errors import StoreConflictError, StoreUnavailableError, StoreWriteError


class StockRecord(Protocol):
    id: int
    name: str
    article: str | None
    quantity: Decimal
    price: Decimal | None


class RecordStore(Protocol):
    """Scoped point lookups and writes over stock records.

    Every method works inside one scope: the whole warehouse, or a single
    picking list. Writes become durable on :meth:`commit`.
    """

    scope: str

    async def find_by_article(self, article: str) -> StockRecord | None: ...

    async def count_by_article(self, article: str) -> int: ...

    async def find_by_name(self, name: str) -> StockRecord | None: ...

    async def create(self, fields: Mapping[str, Any]) -> StockRecord: ...

    async def update(self, record_id: int, fields: Mapping[str, Any]) -> StockRecord: ...

    async def delete(self, record_id: int) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """Map SQLAlchemy failures onto the reconciliation error taxonomy."""

    try:
        yield
    except StaleDataError as exc:
        raise StoreConflictError(str(exc)) from exc
    except IntegrityError as exc:
        raise StoreWriteError(str(exc.orig)) from exc
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailableError(str(exc.orig)) from exc


StockModel = Union[type[WarehouseItem], type[PickingListItem]]


class SqlAlchemyRecordStore:
    """Base store over one ORM model; subclasses narrow the scope."""

    model: StockModel
    scope = "warehouse"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _scoped(self, stmt: Select) -> Select:
        return stmt

    def _scope_fields(self) -> dict[str, Any]:
        return {}

    def _lookup(self, *criteria: Any) -> Select:
        return (
            self._scoped(select(self.model).where(*criteria))
            .order_by(self.model.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )

    async def _first(self, stmt: Select) -> StockRecord | None:
        with translate_store_errors():
            result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_by_article(self, article: str) -> StockRecord | None:
        return await self._first(self._lookup(self.model.article == article))

    async def count_by_article(self, article: str) -> int:
        stmt = self._scoped(
            select(func.count()).select_from(self.model).where(self.model.article == article)
        )
        with translate_store_errors():
            result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def find_by_name(self, name: str) -> StockRecord | None:
        return await self._first(
            self._lookup(self.model.name_key == normalize_name(name))
        )

    async def _get(self, record_id: int) -> Any:
        with translate_store_errors():
            record = await self.session.get(self.model, record_id)
        if record is None:
            raise StoreConflictError(f"record {record_id} no longer exists")
        return record

    async def _assign(self, record: Any, fields: Mapping[str, Any]) -> None:
        for key, value in fields.items():
            if key == "supplier":
                continue
            setattr(record, key, value)

    async def create(self, fields: Mapping[str, Any]) -> StockRecord:
        record = self.model(**self._scope_fields())
        await self._assign(record, fields)
        self.session.add(record)
        with translate_store_errors():
            await self.session.flush()
        return record

    async def update(self, record_id: int, fields: Mapping[str, Any]) -> StockRecord:
        record = await self._get(record_id)
        await self._assign(record, fields)
        with translate_store_errors():
            await self.session.flush()
        return record

    async def delete(self, record_id: int) -> None:
        record = await self._get(record_id)
        with translate_store_errors():
            await self.session.delete(record)
            await self.session.flush()

    async def commit(self) -> None:
        with translate_store_errors():
            await self.session.commit()

    async def rollback(self) -> None:
        with translate_store_errors():
            await self.session.rollback()


class WarehouseRecordStore(SqlAlchemyRecordStore):
    """Warehouse-wide scope. Supplier names in rows are ignored."""

    model = WarehouseItem


class PickingListRecordStore(SqlAlchemyRecordStore):
    """Records of one picking list; rows may name a supplier."""

    model = PickingListItem

    def __init__(self, session: AsyncSession, picking_list_id: int) -> None:
        super().__init__(session)
        self.picking_list_id = picking_list_id
        self.scope = f"picking list {picking_list_id}"
        self.suppliers_created = 0
        self._pending_suppliers = 0

    def _scoped(self, stmt: Select) -> Select:
        return stmt.where(PickingListItem.picking_list_id == self.picking_list_id)

    def _scope_fields(self) -> dict[str, Any]:
        return {"picking_list_id": self.picking_list_id}

    async def _assign(self, record: Any, fields: Mapping[str, Any]) -> None:
        await super()._assign(record, fields)
        supplier_name = fields.get("supplier")
        if supplier_name:
            record.supplier = await self._find_or_create_supplier(supplier_name)

    async def _find_supplier(self, name: str) -> Supplier | None:
        stmt = select(Supplier).where(Supplier.name_key == normalize_name(name))
        with translate_store_errors():
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_or_create_supplier(self, name: str) -> Supplier:
        supplier = await self._find_supplier(name)
        if supplier is None:
            supplier = Supplier(name=name.strip())
            self.session.add(supplier)
            with translate_store_errors():
                await self.session.flush()
            self._pending_suppliers += 1
        return supplier

    async def commit(self) -> None:
        await super().commit()
        self.suppliers_created += self._pending_suppliers
        self._pending_suppliers = 0

    async def rollback(self) -> None:
        self._pending_suppliers = 0
        await super().rollback()


__all__ = [
    "PickingListRecordStore",
    "RecordStore",
    "SqlAlchemyRecordStore",
    "StockRecord",
    "WarehouseRecordStore",
    "translate_store_errors",
]
