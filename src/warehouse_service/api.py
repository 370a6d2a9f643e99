"""FastAPI router configuration."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, status
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, schemas
from .config import Settings, get_settings
from .database import get_session
from .log import configure_logging
from .reconciliation.engine import ImportPreview, ImportSummary, ReconciliationEngine
from .reconciliation.errors import ImportAbortedError
from .reconciliation.store import PickingListRecordStore, RecordStore, WarehouseRecordStore

router = APIRouter()


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def _not_found(exc: NoResultFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _summary_out(summary: ImportSummary) -> schemas.ImportSummaryOut:
    return schemas.ImportSummaryOut.model_validate(summary.to_dict())


def _preview_out(preview: ImportPreview) -> schemas.ImportPreviewOut:
    return schemas.ImportPreviewOut(
        mode=preview.mode,
        effects=[schemas.PlannedEffectOut.model_validate(effect) for effect in preview.effects],
        skipped=preview.skipped,
        errors=[schemas.ImportRowErrorOut(**error.to_dict()) for error in preview.errors],
        warnings=preview.warnings,
    )


async def _run_import(
    store: RecordStore, payload: schemas.ImportRequest, settings: Settings
) -> schemas.ImportSummaryOut:
    engine = ReconciliationEngine(store, max_retries=settings.import_max_retries)
    try:
        summary = await engine.run(payload.rows, payload.mode)
    except ImportAbortedError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.summary.to_dict()
        ) from exc
    if summary.identities == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "No importable rows found", **summary.to_dict()},
        )
    return _summary_out(summary)


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


@router.get("/warehouse", response_model=schemas.WarehouseItemPage, tags=["warehouse"])
async def list_warehouse_items(
    search: str | None = None,
    category: str | None = None,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.WarehouseItemPage:
    page_size = min(limit or settings.default_page_size, settings.max_page_size)
    items, pagination = await crud.list_warehouse_items(
        session, search=search, category=category, page=page, limit=page_size
    )
    return schemas.WarehouseItemPage(
        items=[schemas.WarehouseItemOut.model_validate(item) for item in items],
        pagination=pagination,
    )


@router.get("/warehouse/ids", response_model=schemas.WarehouseItemIds, tags=["warehouse"])
async def list_warehouse_item_ids(
    search: str | None = None,
    category: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> schemas.WarehouseItemIds:
    ids = await crud.list_warehouse_item_ids(session, search=search, category=category)
    return schemas.WarehouseItemIds(ids=list(ids), total=len(ids))


@router.get("/warehouse/categories", response_model=schemas.CategoryList, tags=["warehouse"])
async def list_categories(session: AsyncSession = Depends(get_session)) -> schemas.CategoryList:
    return schemas.CategoryList(categories=await crud.list_categories(session))


@router.get("/warehouse/low-stock", response_model=schemas.LowStockList, tags=["warehouse"])
async def list_low_stock(session: AsyncSession = Depends(get_session)) -> schemas.LowStockList:
    items = await crud.list_low_stock_items(session)
    return schemas.LowStockList(
        items=[schemas.WarehouseItemOut.model_validate(item) for item in items],
        count=len(items),
    )


@router.post("/warehouse/import", response_model=schemas.ImportSummaryOut, tags=["import"])
async def import_warehouse_items(
    payload: schemas.ImportRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.ImportSummaryOut:
    return await _run_import(WarehouseRecordStore(session), payload, settings)


@router.post(
    "/warehouse/import/preview", response_model=schemas.ImportPreviewOut, tags=["import"]
)
async def preview_warehouse_import(
    payload: schemas.ImportRequest, session: AsyncSession = Depends(get_session)
) -> schemas.ImportPreviewOut:
    preview = await ReconciliationEngine(WarehouseRecordStore(session)).preview(
        payload.rows, payload.mode
    )
    return _preview_out(preview)


@router.post(
    "/warehouse",
    response_model=schemas.WarehouseItemOut,
    status_code=status.HTTP_201_CREATED,
    tags=["warehouse"],
)
async def create_warehouse_item(
    payload: schemas.WarehouseItemCreate, session: AsyncSession = Depends(get_session)
) -> schemas.WarehouseItemOut:
    item = await crud.create_warehouse_item(session, payload)
    await session.commit()
    return schemas.WarehouseItemOut.model_validate(item)


@router.delete("/warehouse", response_model=schemas.BulkDeleteResult, tags=["warehouse"])
async def delete_warehouse_items(
    payload: schemas.BulkDeleteRequest, session: AsyncSession = Depends(get_session)
) -> schemas.BulkDeleteResult:
    deleted = await crud.delete_warehouse_items(session, payload.ids)
    await session.commit()
    return schemas.BulkDeleteResult(deleted=deleted, message=f"Deleted items: {deleted}")


@router.get("/warehouse/{item_id}", response_model=schemas.WarehouseItemOut, tags=["warehouse"])
async def get_warehouse_item(
    item_id: int, session: AsyncSession = Depends(get_session)
) -> schemas.WarehouseItemOut:
    try:
        item = await crud.get_warehouse_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    return schemas.WarehouseItemOut.model_validate(item)


@router.put("/warehouse/{item_id}", response_model=schemas.WarehouseItemOut, tags=["warehouse"])
async def update_warehouse_item(
    item_id: int,
    payload: schemas.WarehouseItemUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.WarehouseItemOut:
    try:
        item = await crud.get_warehouse_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    item = await crud.update_warehouse_item(session, item, payload)
    await session.commit()
    await session.refresh(item)
    return schemas.WarehouseItemOut.model_validate(item)


@router.delete(
    "/warehouse/{item_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["warehouse"]
)
async def delete_warehouse_item(
    item_id: int, session: AsyncSession = Depends(get_session)
) -> None:
    try:
        item = await crud.get_warehouse_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await crud.delete_warehouse_item(session, item)
    await session.commit()


@router.post(
    "/suppliers",
    response_model=schemas.SupplierOut,
    status_code=status.HTTP_201_CREATED,
    tags=["suppliers"],
)
async def create_supplier(
    payload: schemas.SupplierCreate, session: AsyncSession = Depends(get_session)
) -> schemas.SupplierOut:
    try:
        supplier = await crud.create_supplier(session, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return schemas.SupplierOut.model_validate(supplier)


@router.get("/suppliers", response_model=list[schemas.SupplierOut], tags=["suppliers"])
async def list_suppliers(
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.SupplierOut]:
    suppliers = await crud.list_suppliers(session)
    return [schemas.SupplierOut.model_validate(supplier) for supplier in suppliers]


@router.get("/suppliers/{supplier_id}", response_model=schemas.SupplierOut, tags=["suppliers"])
async def get_supplier(
    supplier_id: int, session: AsyncSession = Depends(get_session)
) -> schemas.SupplierOut:
    try:
        supplier = await crud.get_supplier(session, supplier_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    return schemas.SupplierOut.model_validate(supplier)


@router.get("/picking-lists", response_model=list[schemas.PickingListOut], tags=["picking"])
async def list_picking_lists(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.PickingListOut]:
    picking_lists = await crud.list_picking_lists(
        session, start_date=start_date, end_date=end_date
    )
    return [schemas.PickingListOut.model_validate(entry) for entry in picking_lists]


@router.post(
    "/picking-lists",
    response_model=schemas.PickingListOut,
    status_code=status.HTTP_201_CREATED,
    tags=["picking"],
)
async def create_picking_list(
    payload: schemas.PickingListCreate, session: AsyncSession = Depends(get_session)
) -> schemas.PickingListOut:
    picking_list = await crud.create_picking_list(session, payload)
    await session.commit()
    return schemas.PickingListOut.model_validate(picking_list)


@router.get(
    "/picking-lists/{picking_list_id}", response_model=schemas.PickingListDetail, tags=["picking"]
)
async def get_picking_list(
    picking_list_id: int, session: AsyncSession = Depends(get_session)
) -> schemas.PickingListDetail:
    try:
        picking_list = await crud.get_picking_list(session, picking_list_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    items = await crud.list_picking_list_items(session, picking_list_id)
    return schemas.PickingListDetail(
        picking_list=schemas.PickingListOut.model_validate(picking_list),
        items=[schemas.PickingListItemOut.model_validate(item) for item in items],
    )


@router.delete(
    "/picking-lists/{picking_list_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["picking"]
)
async def delete_picking_list(
    picking_list_id: int, session: AsyncSession = Depends(get_session)
) -> None:
    try:
        picking_list = await crud.get_picking_list(session, picking_list_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await crud.delete_picking_list(session, picking_list)
    await session.commit()


@router.post(
    "/picking-lists/{picking_list_id}/import",
    response_model=schemas.ImportSummaryOut,
    tags=["import"],
)
async def import_picking_list_items(
    picking_list_id: int,
    payload: schemas.ImportRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.ImportSummaryOut:
    try:
        await crud.get_picking_list(session, picking_list_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    return await _run_import(PickingListRecordStore(session, picking_list_id), payload, settings)


@router.post(
    "/picking-lists/{picking_list_id}/import/preview",
    response_model=schemas.ImportPreviewOut,
    tags=["import"],
)
async def preview_picking_list_import(
    picking_list_id: int,
    payload: schemas.ImportRequest,
    session: AsyncSession = Depends(get_session),
) -> schemas.ImportPreviewOut:
    try:
        await crud.get_picking_list(session, picking_list_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    store = PickingListRecordStore(session, picking_list_id)
    preview = await ReconciliationEngine(store).preview(payload.rows, payload.mode)
    return _preview_out(preview)


@router.post(
    "/picking-list-items",
    response_model=schemas.PickingListItemOut,
    status_code=status.HTTP_201_CREATED,
    tags=["picking"],
)
async def create_picking_list_item(
    payload: schemas.PickingListItemCreate, session: AsyncSession = Depends(get_session)
) -> schemas.PickingListItemOut:
    try:
        item = await crud.create_picking_list_item(session, payload)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await session.commit()
    await session.refresh(item)
    return schemas.PickingListItemOut.model_validate(item)


@router.put(
    "/picking-list-items/{item_id}", response_model=schemas.PickingListItemOut, tags=["picking"]
)
async def update_picking_list_item(
    item_id: int,
    payload: schemas.PickingListItemUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.PickingListItemOut:
    try:
        item = await crud.get_picking_list_item(session, item_id)
        item = await crud.update_picking_list_item(session, item, payload)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await session.commit()
    await session.refresh(item)
    return schemas.PickingListItemOut.model_validate(item)


@router.delete(
    "/picking-list-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["picking"]
)
async def delete_picking_list_item(
    item_id: int, session: AsyncSession = Depends(get_session)
) -> None:
    try:
        item = await crud.get_picking_list_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await crud.delete_picking_list_item(session, item)
    await session.commit()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(level=settings.log_level)
    app = FastAPI(title=settings.app_name)
    app.dependency_overrides[provide_settings] = lambda: settings
    app.include_router(router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
