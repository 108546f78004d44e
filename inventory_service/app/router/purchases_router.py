# app/router/purchases_router.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from shared.core.config import Settings, get_settings
from shared.core.database import get_db, run_in_transaction
from shared.core.deadline import Deadline, request_deadline
from shared.utils.dates import parse_date_param

from ..crud import purchases_crud as crud
from ..enum.inventory_enum import PurchaseStatus
from ..schemas.purchases_schemas import (
    PurchaseCreate, PurchaseListResponse, PurchaseOut, PurchaseReportOut, PurchasesRequest,
    PurchaseTrendsOut, PurchaseUpdate)

router = APIRouter(prefix="/purchases", tags=["purchases"])


def purchases_request(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[PurchaseStatus] = None,
    business_id: Optional[str] = Query(None, alias="businessId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> PurchasesRequest:
    return PurchasesRequest(
        search=search, skip=skip, limit=limit,
        status=status.value if status else None,
        business_id=business_id,
        start_date=parse_date_param(start_date, "startDate"),
        end_date=parse_date_param(end_date, "endDate", end=True),
    )


# -----------------------------------------------------------------
@router.get("", response_model=PurchaseListResponse)
def get_purchases(params: PurchasesRequest = Depends(purchases_request), db: Session = Depends(get_db)):
    return crud.get_purchases(db, params)


@router.post("", response_model=PurchaseOut, status_code=status.HTTP_201_CREATED)
def create_purchase(
        purchase: PurchaseCreate,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.create_purchase(s, purchase, deadline),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.get("/reports/by-date", response_model=PurchaseReportOut)
def get_purchase_report(
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        status: Optional[PurchaseStatus] = None,
        db: Session = Depends(get_db)):
    return crud.get_purchase_report(
        db,
        parse_date_param(start_date, "startDate"),
        parse_date_param(end_date, "endDate", end=True),
        status.value if status else None,
    )


@router.get("/trends", response_model=PurchaseTrendsOut)
def get_purchase_trends(
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        db: Session = Depends(get_db)):
    return crud.get_purchase_trends(
        db, parse_date_param(start_date, "startDate"), parse_date_param(end_date, "endDate", end=True))


@router.get("/{purchase_id}", response_model=PurchaseOut)
def get_purchase(purchase_id: str, db: Session = Depends(get_db)):
    return crud.get_purchase_or_404(db, purchase_id)


@router.patch("/{purchase_id}", response_model=PurchaseOut)
def update_purchase(
        purchase_id: str,
        purchase: PurchaseUpdate,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.update_purchase(s, purchase_id, purchase, deadline),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.delete("/{purchase_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_purchase(
        purchase_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    run_in_transaction(db, lambda s: crud.delete_purchase(s, purchase_id, deadline),
                       retries=settings.TRANSACTION_RETRIES, deadline=deadline)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
