# app/router/assets_router.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from shared.core.config import Settings, get_settings
from shared.core.database import get_db, run_in_transaction
from shared.core.deadline import Deadline, request_deadline
from shared.helpers.upload_helper import persist_with_image, read_image_payload, read_model_payload
from shared.storage.base import StorageProvider
from shared.storage.factory import get_storage

from ..crud import assets_crud as crud
from ..enum.inventory_enum import AssetStatus
from ..schemas.assets_schemas import (
    AssetCreate, AssetImageOut, AssetListResponse, AssetOut, AssetsRequest, AssetUpdate, CategoryReportOut,
    DepreciationIn, DepreciationOut, MaintenanceDueOut, MaintenanceIn)

router = APIRouter(prefix="/assets", tags=["assets"])


def assets_request(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[AssetStatus] = None,
    category: Optional[str] = None,
    business_id: Optional[str] = Query(None, alias="businessId"),
) -> AssetsRequest:
    return AssetsRequest(search=search, skip=skip, limit=limit, status=status, category=category,
                         business_id=business_id)


# -----------------------------------------------------------------
@router.get("", response_model=AssetListResponse)
def get_assets(params: AssetsRequest = Depends(assets_request), db: Session = Depends(get_db)):
    return crud.get_assets(db, params)


@router.post("", response_model=AssetOut, status_code=status.HTTP_201_CREATED)
async def create_asset(
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    asset, image = await read_model_payload(request, AssetCreate, settings.MAX_UPLOAD_BYTES)

    def persist(image_url):
        if image_url:
            asset.image_url = image_url
        return run_in_transaction(db, lambda s: crud.create_asset(s, asset),
                                  retries=settings.TRANSACTION_RETRIES, deadline=deadline)

    return await run_in_threadpool(persist_with_image, storage, image, settings.UPLOAD_PREFIX,
                                   settings.MAX_UPLOAD_BYTES, persist)


@router.get("/reports/by-category", response_model=CategoryReportOut)
def get_category_report(
        business_id: Optional[str] = Query(None, alias="businessId"),
        db: Session = Depends(get_db)):
    return crud.get_category_report(db, business_id)


@router.get("/{asset_id}", response_model=AssetOut)
def get_asset(asset_id: str, db: Session = Depends(get_db)):
    return crud.get_asset_or_404(db, asset_id)


@router.patch("/{asset_id}", response_model=AssetOut)
async def update_asset(
        asset_id: str,
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    asset, image = await read_model_payload(request, AssetUpdate, settings.MAX_UPLOAD_BYTES)

    def persist(image_url):
        if image_url:
            asset.image_url = image_url
        return run_in_transaction(db, lambda s: crud.update_asset(s, asset_id, asset),
                                  retries=settings.TRANSACTION_RETRIES, deadline=deadline)

    return await run_in_threadpool(persist_with_image, storage, image, settings.UPLOAD_PREFIX,
                                   settings.MAX_UPLOAD_BYTES, persist)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_asset(
        asset_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    run_in_transaction(db, lambda s: crud.delete_asset(s, asset_id),
                       retries=settings.TRANSACTION_RETRIES, deadline=deadline)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------- Lifecycle ----------------
@router.post("/{asset_id}/maintenance", response_model=AssetOut)
def record_maintenance(
        asset_id: str,
        maintenance: MaintenanceIn,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.record_maintenance(s, asset_id, maintenance),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.get("/{asset_id}/maintenance-due", response_model=MaintenanceDueOut)
def get_maintenance_due(asset_id: str, db: Session = Depends(get_db)):
    return crud.get_maintenance_due(db, asset_id)


@router.patch("/{asset_id}/depreciation", response_model=DepreciationOut)
def apply_depreciation(
        asset_id: str,
        depreciation: DepreciationIn,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.apply_depreciation(s, asset_id, depreciation),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.post("/{asset_id}/retire", response_model=AssetOut)
def retire_asset(
        asset_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.retire_asset(s, asset_id),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.patch("/{asset_id}/image", response_model=AssetImageOut)
async def upload_asset_image(
        asset_id: str,
        request: Request,
        db: Session = Depends(get_db),
        storage: StorageProvider = Depends(get_storage),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    image = await read_image_payload(request, settings.MAX_UPLOAD_BYTES)

    def persist(image_url):
        return run_in_transaction(db, lambda s: crud.update_asset_image(s, asset_id, image_url),
                                  retries=settings.TRANSACTION_RETRIES, deadline=deadline)

    asset = await run_in_threadpool(persist_with_image, storage, image, settings.UPLOAD_PREFIX,
                                    settings.MAX_UPLOAD_BYTES, persist)
    return {"image_url": asset.image_url, "asset": asset}
