"""Database models for warehouse stock and picking lists."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .database import Base
from .reconciliation.aggregate import normalize_name

QUANTITY_TYPE = Numeric(14, 3)
PRICE_TYPE = Numeric(14, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin providing created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class NamedMixin:
    """Mixin keeping a case-folded ``name_key`` next to ``name``.

    SQLite's ``lower()`` only folds ASCII, so case-insensitive lookups compare
    against ``name_key`` instead.
    """

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        self.name_key = normalize_name(value)
        return value


class WarehouseItem(NamedMixin, TimestampMixin, Base):
    __tablename__ = "warehouse_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_warehouse_items_quantity_positive"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_warehouse_items_price_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    article: Mapped[str | None] = mapped_column(String(128), index=True)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY_TYPE, default=Decimal("0"), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(PRICE_TYPE)
    category: Mapped[str | None] = mapped_column(String(128), index=True)
    low_stock_threshold: Mapped[Decimal | None] = mapped_column(QUANTITY_TYPE)
    # Bumped on every flush; a mismatch on UPDATE/DELETE raises StaleDataError.
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        threshold = self.low_stock_threshold
        return bool(threshold) and self.quantity <= threshold


class Supplier(NamedMixin, TimestampMixin, Base):
    __tablename__ = "suppliers"
    __table_args__ = (UniqueConstraint("name_key", name="uq_suppliers_name_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    balance: Mapped[Decimal] = mapped_column(PRICE_TYPE, default=Decimal("0"), nullable=False)


class PickingList(TimestampMixin, Base):
    __tablename__ = "picking_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))

    items: Mapped[list["PickingListItem"]] = relationship(
        back_populates="picking_list", passive_deletes=True
    )


class PickingListItem(NamedMixin, TimestampMixin, Base):
    __tablename__ = "picking_list_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_picking_list_items_quantity_positive"),
        CheckConstraint(
            "price IS NULL OR price >= 0", name="ck_picking_list_items_price_positive"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    picking_list_id: Mapped[int] = mapped_column(
        ForeignKey("picking_lists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    article: Mapped[str | None] = mapped_column(String(128), index=True)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY_TYPE, default=Decimal("1"), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(PRICE_TYPE)
    supplier_id: Mapped[int | None] = mapped_column(
        ForeignKey("suppliers.id", ondelete="SET NULL")
    )
    collected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    picking_list: Mapped[PickingList] = relationship(back_populates="items")
    supplier: Mapped[Supplier | None] = relationship(lazy="joined")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def supplier_name(self) -> str | None:
        return self.supplier.name if self.supplier is not None else None


__all__ = [
    "WarehouseItem",
    "Supplier",
    "PickingList",
    "PickingListItem",
]
