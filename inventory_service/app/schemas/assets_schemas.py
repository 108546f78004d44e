# app/schemas/assets_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from shared.core.schemas import CamelModel, CommonQueryParams, InputModel

from ..enum.inventory_enum import AssetStatus, MaintenanceFrequency


class MaintenanceScheduleIn(InputModel):
    frequency: Optional[MaintenanceFrequency] = None
    last_maintenance: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None


class AssetBase(InputModel):
    business_id: Optional[str] = None
    asset_tag: Optional[str] = None
    category: Optional[str] = None
    purchase_id: Optional[str] = None
    purchase_date: Optional[datetime] = None
    location: Optional[str] = None
    assigned_to: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    tags: Optional[List[str]] = None
    maintenance_schedule: Optional[MaintenanceScheduleIn] = None


class AssetCreate(AssetBase):
    name: str
    initial_cost: float = Field(0, ge=0)
    # defaults to initialCost
    current_value: Optional[float] = Field(None, ge=0)
    status: AssetStatus = AssetStatus.active


class AssetUpdate(AssetBase):
    name: Optional[str] = None
    initial_cost: Optional[float] = Field(None, ge=0)
    current_value: Optional[float] = Field(None, ge=0)
    status: Optional[AssetStatus] = None


class AssetOut(CamelModel):
    id: str
    business_id: Optional[str] = None
    name: str
    asset_tag: Optional[str] = None
    category: Optional[str] = None
    purchase_id: Optional[str] = None
    item_id: Optional[str] = None
    purchase_date: Optional[datetime] = None
    initial_cost: float
    current_value: float
    location: Optional[str] = None
    assigned_to: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[str] = []
    status: str
    maintenance_schedule: Optional[Dict[str, Any]] = None
    maintenance_history: List[Dict[str, Any]] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AssetsRequest(CommonQueryParams):
    status: Optional[AssetStatus] = None
    category: Optional[str] = None
    business_id: Optional[str] = None


class AssetListResponse(CamelModel):
    assets: List[AssetOut]
    total: int


class MaintenanceIn(InputModel):
    date: Optional[datetime] = None
    description: str
    performed_by: Optional[str] = None
    cost: float = Field(0, ge=0)
    # replaces the schedule's frequency when given
    frequency: Optional[MaintenanceFrequency] = None


class MaintenanceDueOut(CamelModel):
    asset_id: str
    is_maintenance_due: bool
    next_maintenance: Optional[datetime] = None
    last_maintenance: Optional[datetime] = None
    frequency: Optional[str] = None


class DepreciationIn(InputModel):
    years: float = Field(5, gt=0)
    salvage_value: float = Field(0, ge=0)
    as_of: Optional[datetime] = None


class DepreciationOut(CamelModel):
    asset_id: str
    asset_name: str
    initial_cost: float
    current_value: float
    depreciation_amount: float
    depreciation_rate: float
    depreciation_method: str = "straight-line"
    years: float
    salvage_value: float


class CategoryReportRow(CamelModel):
    category: str
    count: int
    total_value: float


class CategoryReportOut(CamelModel):
    categories: List[CategoryReportRow]
    total_assets: int
    total_value: float


class AssetImageOut(CamelModel):
    image_url: str
    asset: AssetOut
