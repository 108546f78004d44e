# app/schemas/items_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from shared.core.schemas import CamelModel, CommonQueryParams, InputModel

from ..enum.inventory_enum import (
    AreaUnit, ItemType, LengthUnit, PriceType, TrackingType, VolumeUnit, WeightUnit)


def _split_tags(value):
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    seen = []
    for tag in value:
        tag = tag.strip() if isinstance(tag, str) else tag
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class MeasurementFields(InputModel):
    quantity: Optional[float] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    weight_unit: Optional[WeightUnit] = None
    length: Optional[float] = Field(None, ge=0)
    length_unit: Optional[LengthUnit] = None
    area: Optional[float] = Field(None, ge=0)
    area_unit: Optional[AreaUnit] = None
    volume: Optional[float] = Field(None, ge=0)
    volume_unit: Optional[VolumeUnit] = None


class ComponentIn(MeasurementFields):
    item: str


class PackInfo(InputModel):
    is_pack: bool = False
    units_per_pack: float = Field(1, ge=1)
    cost_per_unit: Optional[float] = Field(None, ge=0)


class ItemBase(InputModel):
    business_id: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    tags: Optional[List[str]] = None
    price_type: Optional[PriceType] = None
    cost: Optional[float] = Field(None, ge=0)
    pack_info: Optional[PackInfo] = None
    components: Optional[List[ComponentIn]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        return _split_tags(v)


class ItemCreate(ItemBase):
    # omitted -> next generated SKU
    sku: Optional[str] = None
    name: str
    item_type: ItemType = ItemType.product
    tracking_type: TrackingType = TrackingType.quantity
    quantity: float = Field(0, ge=0)
    weight: float = Field(0, ge=0)
    length: float = Field(0, ge=0)
    area: float = Field(0, ge=0)
    volume: float = Field(0, ge=0)
    weight_unit: WeightUnit = WeightUnit.lb
    length_unit: LengthUnit = LengthUnit.inch
    area_unit: AreaUnit = AreaUnit.sqft
    volume_unit: VolumeUnit = VolumeUnit.l
    price: float = Field(..., ge=0)


class ItemUpdate(ItemBase):
    sku: Optional[str] = None
    name: Optional[str] = None
    item_type: Optional[ItemType] = None
    tracking_type: Optional[TrackingType] = None
    quantity: Optional[float] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    length: Optional[float] = Field(None, ge=0)
    area: Optional[float] = Field(None, ge=0)
    volume: Optional[float] = Field(None, ge=0)
    weight_unit: Optional[WeightUnit] = None
    length_unit: Optional[LengthUnit] = None
    area_unit: Optional[AreaUnit] = None
    volume_unit: Optional[VolumeUnit] = None
    price: Optional[float] = Field(None, ge=0)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        # absent stays absent on patch
        return None if v is None else _split_tags(v)


class ItemOut(CamelModel):
    id: str
    business_id: Optional[str] = None
    sku: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[str] = []
    item_type: str
    tracking_type: str
    quantity: float = 0
    weight: float = 0
    length: float = 0
    area: float = 0
    volume: float = 0
    weight_unit: Optional[str] = None
    length_unit: Optional[str] = None
    area_unit: Optional[str] = None
    volume_unit: Optional[str] = None
    price: float
    price_type: Optional[str] = None
    cost: float = 0
    pack_info: Optional[Dict[str, Any]] = None
    # ids, or item summaries when populated
    components: List[Dict[str, Any]] = []
    used_in_products: List[Any] = []
    derived_from: Optional[Dict[str, Any]] = None
    derived_items: List[Dict[str, Any]] = []
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class MeasurementTotal(CamelModel):
    count: int
    total: float


class ItemSummary(CamelModel):
    id: str
    name: str
    sku: str
    item_type: Optional[str] = None
    tracking_type: Optional[str] = None


class ItemsRequest(CommonQueryParams):
    category: Optional[str] = None
    item_type: Optional[ItemType] = None
    tracking_type: Optional[TrackingType] = None
    tag: Optional[str] = None
    business_id: Optional[str] = None


class ItemListResponse(CamelModel):
    items: List[ItemOut]
    total: int
    skip: int
    limit: int


class NextSkuOut(CamelModel):
    next_sku: str


class ItemImageOut(CamelModel):
    image_url: str
    item: ItemOut


# ----------------------------------------------------------------------
# Relationships
# ----------------------------------------------------------------------

class BreakdownEntry(MeasurementFields):
    item_id: Optional[str] = None
    name: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    tags: Optional[List[str]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        return _split_tags(v)


class BreakdownIn(InputModel):
    derived_items: List[BreakdownEntry] = Field(..., min_length=1)


class BreakdownOut(CamelModel):
    source_item: ItemOut
    derived_items: List[ItemOut]


class ProductRef(CamelModel):
    id: str
    name: str
    quantity: Optional[float] = None


class RelationshipsOut(CamelModel):
    item_id: str
    name: str
    item_type: str
    is_used_in_products: bool
    products: List[ProductRef]
    components: List[Dict[str, Any]]
    derived_from: Optional[Dict[str, Any]] = None
    derived_items: List[Dict[str, Any]]


class RebuildRelationshipsOut(CamelModel):
    products_processed: int
    materials_updated: int
    derived_links_rebuilt: int


# ----------------------------------------------------------------------
# Inventory rebuild
# ----------------------------------------------------------------------

class ItemRebuildOut(CamelModel):
    item_id: str
    name: str
    sku: str
    updated: bool
    changes: Dict[str, Any] = {}
    error: Optional[str] = None


class InventoryRebuildOut(CamelModel):
    processed: int
    updated: int
    errors: int
    details: List[ItemRebuildOut]
