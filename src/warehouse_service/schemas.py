"""Pydantic schemas used by the API."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .reconciliation.rows import ImportMode


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class WarehouseItemBase(BaseModel):
    name: str = Field(..., min_length=1, description="Human readable product name.")
    article: str | None = Field(None, description="Preferred identity key when present.")
    quantity: Decimal = Field(Decimal("0"), ge=0, decimal_places=3)
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    category: str | None = None
    low_stock_threshold: Decimal | None = Field(None, ge=0, decimal_places=3)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("article", "category")
    @classmethod
    def _strip_text(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class WarehouseItemCreate(WarehouseItemBase):
    pass


class WarehouseItemUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    article: str | None = None
    quantity: Decimal | None = Field(None, ge=0, decimal_places=3)
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    category: str | None = None
    low_stock_threshold: Decimal | None = Field(None, ge=0, decimal_places=3)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("article", "category")
    @classmethod
    def _strip_text(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class WarehouseItemOut(WarehouseItemBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_low_stock: bool = False
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class WarehouseItemPage(BaseModel):
    items: list[WarehouseItemOut]
    pagination: Pagination


class WarehouseItemIds(BaseModel):
    ids: list[int]
    total: int


class CategoryList(BaseModel):
    categories: list[str]


class LowStockList(BaseModel):
    items: list[WarehouseItemOut]
    count: int


class BulkDeleteRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class BulkDeleteResult(BaseModel):
    deleted: int
    message: str


class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class SupplierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    balance: Decimal
    created_at: datetime


class PickingListCreate(BaseModel):
    date: datetime | None = None
    name: str | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class PickingListOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: datetime
    name: str | None = None
    created_at: datetime
    updated_at: datetime


class PickingListItemCreate(BaseModel):
    picking_list_id: int
    name: str = Field(..., min_length=1)
    article: str | None = None
    quantity: Decimal = Field(Decimal("1"), ge=0, decimal_places=3)
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    supplier_id: int | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("article")
    @classmethod
    def _strip_article(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class PickingListItemUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    article: str | None = None
    quantity: Decimal | None = Field(None, ge=0, decimal_places=3)
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    supplier_id: int | None = None
    collected: bool | None = None
    paid: bool | None = None


class PickingListItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    picking_list_id: int
    name: str
    article: str | None = None
    quantity: Decimal
    price: Decimal | None = None
    supplier_id: int | None = None
    supplier_name: str | None = None
    collected: bool
    paid: bool
    created_at: datetime
    updated_at: datetime


class PickingListDetail(BaseModel):
    picking_list: PickingListOut
    items: list[PickingListItemOut]


class ImportRequest(BaseModel):
    mode: ImportMode = ImportMode.ADD
    rows: list[dict[str, Any]] = Field(
        ..., description="Structured spreadsheet rows keyed by column name."
    )


class ImportRowErrorOut(BaseModel):
    row: int
    reason: str
    identity: str | None = None


class ImportSummaryOut(BaseModel):
    mode: ImportMode
    scope: str
    created: int
    updated: int
    deleted: int
    skipped: int
    errors: list[ImportRowErrorOut]
    warnings: list[str]
    low_stock: list[int]
    suppliers_created: int
    identities: int
    committed: int
    not_applied: int
    aborted: bool
    message: str


class PlannedEffectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    rows: list[int]
    action: Literal["create", "update", "delete", "noop"]
    record_id: int | None = None
    name: str
    article: str | None = None
    current_quantity: Decimal | None = None
    resulting_quantity: Decimal | None = None
    match: str
    warnings: list[str] = Field(default_factory=list)


class ImportPreviewOut(BaseModel):
    mode: ImportMode
    effects: list[PlannedEffectOut]
    skipped: int
    errors: list[ImportRowErrorOut]
    warnings: list[str] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [
    "WarehouseItemCreate",
    "WarehouseItemUpdate",
    "WarehouseItemOut",
    "WarehouseItemPage",
    "WarehouseItemIds",
    "Pagination",
    "CategoryList",
    "LowStockList",
    "BulkDeleteRequest",
    "BulkDeleteResult",
    "SupplierCreate",
    "SupplierOut",
    "PickingListCreate",
    "PickingListOut",
    "PickingListDetail",
    "PickingListItemCreate",
    "PickingListItemUpdate",
    "PickingListItemOut",
    "ImportRequest",
    "ImportRowErrorOut",
    "ImportSummaryOut",
    "PlannedEffectOut",
    "ImportPreviewOut",
    "HealthStatus",
]
