# app/router/items_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from shared.core.config import Settings, get_settings
from shared.core.database import get_db, run_in_transaction
from shared.core.deadline import Deadline, rebuild_deadline, request_deadline
from shared.helpers.upload_helper import persist_with_image, read_image_payload, read_model_payload
from shared.storage.base import StorageProvider
from shared.storage.factory import get_storage

from ..crud import inventory_crud, items_crud, relationships_crud
from ..enum.inventory_enum import ItemType, TrackingType
from ..schemas.items_schemas import (
    BreakdownIn, BreakdownOut, InventoryRebuildOut, ItemCreate, ItemImageOut, ItemListResponse, ItemOut,
    ItemRebuildOut, ItemsRequest, ItemUpdate, NextSkuOut, RebuildRelationshipsOut, RelationshipsOut)
from ..schemas.purchases_schemas import PurchaseOut
from ..schemas.sales_schemas import SaleOut

router = APIRouter(prefix="/items", tags=["items"])


def items_request(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    category: Optional[str] = None,
    item_type: Optional[ItemType] = Query(None, alias="itemType"),
    tracking_type: Optional[TrackingType] = Query(None, alias="trackingType"),
    tag: Optional[str] = None,
    business_id: Optional[str] = Query(None, alias="businessId"),
) -> ItemsRequest:
    return ItemsRequest(search=search, skip=skip, limit=limit, category=category, item_type=item_type,
                        tracking_type=tracking_type, tag=tag, business_id=business_id)


# -----------------------------------------------------------------
@router.get("", response_model=ItemListResponse)
def get_items(params: ItemsRequest = Depends(items_request), db: Session = Depends(get_db)):
    return items_crud.get_items(db, params)


@router.post("", response_model=ItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    item, image = await read_model_payload(request, ItemCreate, settings.MAX_UPLOAD_BYTES)

    def persist(image_url):
        if image_url:
            item.image_url = image_url
        return run_in_transaction(db, lambda s: items_crud.create_item(s, item),
                                  retries=settings.TRANSACTION_RETRIES, deadline=deadline)

    return await run_in_threadpool(persist_with_image, storage, image, settings.UPLOAD_PREFIX,
                                   settings.MAX_UPLOAD_BYTES, persist)


@router.get("/nextsku", response_model=NextSkuOut)
def get_next_sku(db: Session = Depends(get_db)):
    return {"next_sku": items_crud.get_next_sku(db)}


@router.get("/categories", response_model=List[str])
def get_categories(db: Session = Depends(get_db)):
    return items_crud.get_categories(db)


@router.get("/tags", response_model=List[str])
def get_tags(db: Session = Depends(get_db)):
    return items_crud.get_tags(db)


# ---------------- Maintenance utilities ----------------
@router.post("/rebuild-relationships", response_model=RebuildRelationshipsOut)
def rebuild_relationships(
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(rebuild_deadline)):
    return run_in_transaction(db, lambda s: relationships_crud.rebuild_relationships(s, deadline),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.post("/utility/rebuild-inventory", response_model=InventoryRebuildOut)
def rebuild_inventory(
        batch_size: int = Query(inventory_crud.DEFAULT_BATCH_SIZE, alias="batchSize", ge=1, le=1000),
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(rebuild_deadline)):
    return inventory_crud.rebuild_inventory(db, batch_size=batch_size, sync_price=settings.REBUILD_SYNC_PRICE,
                                            retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.post("/utility/rebuild-inventory/{item_id}", response_model=ItemRebuildOut)
def rebuild_item_inventory(
        item_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(rebuild_deadline)):
    return run_in_transaction(
        db, lambda s: inventory_crud.rebuild_single_item(s, item_id, settings.REBUILD_SYNC_PRICE),
        retries=settings.TRANSACTION_RETRIES, deadline=deadline)


# ---------------- Single item ----------------
@router.get("/{item_id}", response_model=ItemOut)
def get_item(item_id: str, populate: bool = False, db: Session = Depends(get_db)):
    item = items_crud.get_item_or_404(db, item_id)
    if populate:
        return items_crud.populate_item(db, item)
    return item


@router.patch("/{item_id}", response_model=ItemOut)
async def update_item(
        item_id: str,
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    item, image = await read_model_payload(request, ItemUpdate, settings.MAX_UPLOAD_BYTES)

    def persist(image_url):
        if image_url:
            item.image_url = image_url
        return run_in_transaction(db, lambda s: items_crud.update_item(s, item_id, item),
                                  retries=settings.TRANSACTION_RETRIES, deadline=deadline)

    return await run_in_threadpool(persist_with_image, storage, image, settings.UPLOAD_PREFIX,
                                   settings.MAX_UPLOAD_BYTES, persist)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
        item_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    run_in_transaction(db, lambda s: items_crud.delete_item(s, item_id),
                       retries=settings.TRANSACTION_RETRIES, deadline=deadline)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{item_id}/image", response_model=ItemImageOut)
async def upload_item_image(
        item_id: str,
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    image = await read_image_payload(request, settings.MAX_UPLOAD_BYTES)

    def persist(image_url):
        return run_in_transaction(db, lambda s: items_crud.update_item_image(s, item_id, image_url),
                                  retries=settings.TRANSACTION_RETRIES, deadline=deadline)

    item = await run_in_threadpool(persist_with_image, storage, image, settings.UPLOAD_PREFIX,
                                   settings.MAX_UPLOAD_BYTES, persist)
    return {"image_url": item.image_url, "item": item}


@router.get("/{item_id}/purchases", response_model=List[PurchaseOut])
def get_item_purchases(item_id: str, db: Session = Depends(get_db)):
    return items_crud.get_item_purchases(db, item_id)


@router.get("/{item_id}/sales", response_model=List[SaleOut])
def get_item_sales(item_id: str, db: Session = Depends(get_db)):
    return items_crud.get_item_sales(db, item_id)


# ---------------- Relationships ----------------
@router.post("/{item_id}/breakdown", response_model=BreakdownOut, status_code=status.HTTP_201_CREATED)
def breakdown_item(
        item_id: str,
        payload: BreakdownIn,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: relationships_crud.breakdown_item(s, item_id, payload, deadline),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.get("/{item_id}/derived", response_model=List[ItemOut])
def get_derived_items(item_id: str, db: Session = Depends(get_db)):
    return relationships_crud.get_derived_items(db, item_id)


@router.get("/{item_id}/parent", response_model=ItemOut)
def get_parent_item(item_id: str, db: Session = Depends(get_db)):
    return relationships_crud.get_parent_item(db, item_id)


@router.get("/{item_id}/relationships", response_model=RelationshipsOut)
def get_relationships(item_id: str, db: Session = Depends(get_db)):
    return relationships_crud.get_relationships(db, item_id)
