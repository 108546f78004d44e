# app/schemas/purchases_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from shared.core.schemas import CamelModel, CommonQueryParams, InputModel

from ..enum.inventory_enum import PaymentMethod, PurchaseStatus, TrackingType
from .items_schemas import MeasurementFields, MeasurementTotal


class Supplier(InputModel):
    name: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class PackageSize(InputModel):
    value: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None


class PackageInfo(InputModel):
    is_package: bool = False
    quantity_per_package: Optional[float] = Field(None, ge=1)
    package_size: Optional[PackageSize] = None


class AssetInfo(InputModel):
    name: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    assigned_to: Optional[str] = None


class PurchaseLineIn(MeasurementFields):
    item: str
    purchased_by: TrackingType = TrackingType.quantity
    cost_per_unit: float = Field(0, ge=0)
    discount_amount: float = Field(0, ge=0)
    discount_percentage: float = Field(0, ge=0, le=100)
    total_cost: Optional[float] = Field(None, ge=0)
    package_info: Optional[PackageInfo] = None
    is_asset: bool = False
    asset_info: Optional[AssetInfo] = None

    @model_validator(mode="after")
    def check_measurement(self):
        value = getattr(self, self.purchased_by.value)
        if value is None or value <= 0:
            raise ValueError(f"purchasedBy is '{self.purchased_by.value}' but no positive "
                             f"{self.purchased_by.value} value was given")
        return self


class PurchaseBase(InputModel):
    business_id: Optional[str] = None
    supplier: Optional[Supplier] = None
    invoice_number: Optional[str] = None
    purchase_date: Optional[datetime] = None
    notes: Optional[str] = None


class PurchaseCreate(PurchaseBase):
    items: List[PurchaseLineIn] = Field(..., min_length=1)
    discount_amount: float = Field(0, ge=0)
    tax_rate: float = Field(0, ge=0)
    shipping_cost: float = Field(0, ge=0)
    payment_method: PaymentMethod = PaymentMethod.cash
    status: PurchaseStatus = PurchaseStatus.pending


class PurchaseUpdate(PurchaseBase):
    items: Optional[List[PurchaseLineIn]] = Field(None, min_length=1)
    discount_amount: Optional[float] = Field(None, ge=0)
    tax_rate: Optional[float] = Field(None, ge=0)
    shipping_cost: Optional[float] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    status: Optional[PurchaseStatus] = None


class PurchaseOut(CamelModel):
    id: str
    business_id: Optional[str] = None
    supplier: Optional[Dict[str, Any]] = None
    items: List[Dict[str, Any]]
    invoice_number: Optional[str] = None
    purchase_date: datetime
    subtotal: float
    discount_amount: float
    tax_rate: float
    tax_amount: float
    shipping_cost: float
    total: float
    notes: Optional[str] = None
    payment_method: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PurchasesRequest(CommonQueryParams):
    status: Optional[str] = None
    business_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PurchaseListResponse(CamelModel):
    purchases: List[PurchaseOut]
    total: int


class PurchaseReportOut(CamelModel):
    total_purchases: int
    total_cost: float
    average_purchase_value: float
    purchases: List[PurchaseOut]


class PurchaseTrendPoint(CamelModel):
    date: str
    count: int
    total_cost: float
    measurement_breakdown: Dict[str, MeasurementTotal]


class PurchaseTrendsOut(CamelModel):
    start_date: datetime
    end_date: datetime
    trends: List[PurchaseTrendPoint]
