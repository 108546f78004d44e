from enum import Enum


class ItemType(str, Enum):
    material = "material"
    product = "product"
    both = "both"


class TrackingType(str, Enum):
    quantity = "quantity"
    weight = "weight"
    length = "length"
    area = "area"
    volume = "volume"


class WeightUnit(str, Enum):
    oz = "oz"
    lb = "lb"
    g = "g"
    kg = "kg"


class LengthUnit(str, Enum):
    mm = "mm"
    cm = "cm"
    m = "m"
    inch = "in"
    ft = "ft"
    yd = "yd"


class AreaUnit(str, Enum):
    sqft = "sqft"
    sqm = "sqm"
    sqyd = "sqyd"
    acre = "acre"
    ha = "ha"


class VolumeUnit(str, Enum):
    ml = "ml"
    l = "l"
    gal = "gal"
    floz = "floz"
    cu_ft = "cu_ft"
    cu_m = "cu_m"


class PriceType(str, Enum):
    each = "each"
    per_weight_unit = "per_weight_unit"
    per_length_unit = "per_length_unit"
    per_area_unit = "per_area_unit"
    per_volume_unit = "per_volume_unit"


class PaymentMethod(str, Enum):
    cash = "cash"
    credit = "credit"
    debit = "debit"
    check = "check"
    bank_transfer = "bank_transfer"
    other = "other"


class PurchaseStatus(str, Enum):
    pending = "pending"
    received = "received"
    partially_received = "partially_received"
    cancelled = "cancelled"


class SaleStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


class PaymentStatus(str, Enum):
    paid = "paid"
    partial = "partial"
    unpaid = "unpaid"


class AssetStatus(str, Enum):
    active = "active"
    maintenance = "maintenance"
    retired = "retired"
    lost = "lost"


class MaintenanceFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


# Statuses whose line items currently count against stock
LIVE_PURCHASE_STATUSES = {PurchaseStatus.received.value, PurchaseStatus.partially_received.value}
LIVE_SALE_STATUSES = {SaleStatus.completed.value}
