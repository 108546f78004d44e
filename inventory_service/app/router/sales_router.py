# app/router/sales_router.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from shared.core.config import Settings, get_settings
from shared.core.database import get_db, run_in_transaction
from shared.core.deadline import Deadline, request_deadline
from shared.utils.dates import parse_date_param

from ..crud import sales_crud as crud
from ..enum.inventory_enum import SaleStatus
from ..schemas.sales_schemas import (
    NextInvoiceOut, PaymentIn, SaleCreate, SaleListResponse, SaleOut, SaleReportOut, SalesRequest,
    SaleTrendsOut, SaleUpdate)

router = APIRouter(prefix="/sales", tags=["sales"])


def sales_request(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[SaleStatus] = None,
    business_id: Optional[str] = Query(None, alias="businessId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
) -> SalesRequest:
    return SalesRequest(
        search=search, skip=skip, limit=limit,
        status=status.value if status else None,
        business_id=business_id,
        start_date=parse_date_param(start_date, "startDate"),
        end_date=parse_date_param(end_date, "endDate", end=True),
    )


# -----------------------------------------------------------------
@router.get("", response_model=SaleListResponse)
def get_sales(params: SalesRequest = Depends(sales_request), db: Session = Depends(get_db)):
    return crud.get_sales(db, params)


@router.post("", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
        sale: SaleCreate,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(
        db, lambda s: crud.create_sale(s, sale, settings.INVOICE_NUMBER_WIDTH, deadline),
        retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.get("/utility/next-invoice", response_model=NextInvoiceOut)
def get_next_invoice(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    return {"invoice_number": crud.get_next_invoice_number(db, settings.INVOICE_NUMBER_WIDTH)}


@router.get("/reports/by-date", response_model=SaleReportOut)
def get_sale_report(
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        status: Optional[SaleStatus] = None,
        db: Session = Depends(get_db)):
    return crud.get_sale_report(
        db,
        parse_date_param(start_date, "startDate"),
        parse_date_param(end_date, "endDate", end=True),
        status.value if status else None,
    )


@router.get("/trends", response_model=SaleTrendsOut)
def get_sale_trends(
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        db: Session = Depends(get_db)):
    return crud.get_sale_trends(
        db, parse_date_param(start_date, "startDate"), parse_date_param(end_date, "endDate", end=True))


@router.get("/{sale_id}", response_model=SaleOut)
def get_sale(sale_id: str, db: Session = Depends(get_db)):
    return crud.get_sale_or_404(db, sale_id)


@router.patch("/{sale_id}", response_model=SaleOut)
def update_sale(
        sale_id: str,
        sale: SaleUpdate,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.update_sale(s, sale_id, sale, deadline),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)


@router.delete("/{sale_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sale(
        sale_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    run_in_transaction(db, lambda s: crud.delete_sale(s, sale_id, deadline),
                       retries=settings.TRANSACTION_RETRIES, deadline=deadline)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{sale_id}/payments", response_model=SaleOut)
def add_payment(
        sale_id: str,
        payment: PaymentIn,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        deadline: Deadline = Depends(request_deadline)):
    return run_in_transaction(db, lambda s: crud.add_payment(s, sale_id, payment),
                              retries=settings.TRANSACTION_RETRIES, deadline=deadline)
