# app/schemas/sales_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from shared.core.schemas import CamelModel, CommonQueryParams, InputModel

from ..enum.inventory_enum import PaymentMethod, SaleStatus, TrackingType
from .items_schemas import MeasurementFields, MeasurementTotal


class Customer(InputModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class SaleLineIn(MeasurementFields):
    item: str
    name: Optional[str] = None
    sold_by: TrackingType = TrackingType.quantity
    # omitted -> the item's current price
    price_at_sale: Optional[float] = Field(None, ge=0)
    discount_amount: float = Field(0, ge=0)
    discount_percentage: float = Field(0, ge=0, le=100)
    total_price: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_measurement(self):
        value = getattr(self, self.sold_by.value)
        if value is None or value <= 0:
            raise ValueError(f"soldBy is '{self.sold_by.value}' but no positive "
                             f"{self.sold_by.value} value was given")
        return self


class PaymentIn(InputModel):
    amount: float = Field(..., gt=0)
    method: Optional[PaymentMethod] = None
    date: Optional[datetime] = None
    reference: Optional[str] = None


class PaymentStatusIn(InputModel):
    amount_paid: float = Field(0, ge=0)


class SaleBase(InputModel):
    business_id: Optional[str] = None
    customer: Optional[Customer] = None
    invoice_number: Optional[str] = None
    sale_date: Optional[datetime] = None
    notes: Optional[str] = None


class SaleCreate(SaleBase):
    items: List[SaleLineIn] = Field(..., min_length=1)
    discount_amount: float = Field(0, ge=0)
    tax_rate: float = Field(0, ge=0)
    shipping_cost: float = Field(0, ge=0)
    payment_method: PaymentMethod = PaymentMethod.cash
    payment_status: Optional[PaymentStatusIn] = None
    status: SaleStatus = SaleStatus.completed


class SaleUpdate(SaleBase):
    items: Optional[List[SaleLineIn]] = Field(None, min_length=1)
    discount_amount: Optional[float] = Field(None, ge=0)
    tax_rate: Optional[float] = Field(None, ge=0)
    shipping_cost: Optional[float] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatusIn] = None
    status: Optional[SaleStatus] = None


class SaleOut(CamelModel):
    id: str
    business_id: Optional[str] = None
    invoice_number: Optional[str] = None
    customer: Optional[Dict[str, Any]] = None
    items: List[Dict[str, Any]]
    sale_date: datetime
    subtotal: float
    discount_amount: float
    tax_rate: float
    tax_amount: float
    shipping_cost: float
    total: float
    payment_method: str
    payment_status: Optional[Dict[str, Any]] = None
    payments: List[Dict[str, Any]] = []
    notes: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SalesRequest(CommonQueryParams):
    status: Optional[str] = None
    business_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SaleListResponse(CamelModel):
    sales: List[SaleOut]
    total: int


class NextInvoiceOut(CamelModel):
    invoice_number: str


class SaleReportOut(CamelModel):
    total_sales: int
    total_revenue: float
    average_order_value: float
    sales: List[SaleOut]


class SaleTrendPoint(CamelModel):
    date: str
    count: int
    total_revenue: float
    measurement_breakdown: Dict[str, MeasurementTotal]


class SaleTrendsOut(CamelModel):
    start_date: datetime
    end_date: datetime
    trends: List[SaleTrendPoint]
