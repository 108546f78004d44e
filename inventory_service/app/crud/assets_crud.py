# app/crud/assets_crud.py
import logging
from datetime import datetime
from typing import Dict, Optional

from dateutil import parser as date_parser
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.core.errors import ConflictError, NotFoundError, ValidationError
from shared.utils.dates import as_naive_utc, utcnow

from ..domain.depreciation import next_maintenance_date, straight_line_value
from ..domain.totals import round_money
from ..enum.inventory_enum import AssetStatus
from ..models.assets import Asset
from ..models.items import Item
from ..models.purchases import Purchase
from ..schemas.assets_schemas import (
    AssetCreate, AssetsRequest, AssetUpdate, DepreciationIn, MaintenanceIn, MaintenanceScheduleIn)

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return as_naive_utc(value)
    return as_naive_utc(date_parser.isoparse(value))


def _schedule_dict(schedule: Optional[MaintenanceScheduleIn]) -> Optional[dict]:
    if schedule is None:
        return None
    return {
        "frequency": schedule.frequency.value if schedule.frequency else None,
        "lastMaintenance": _iso(as_naive_utc(schedule.last_maintenance)),
        "nextMaintenance": _iso(as_naive_utc(schedule.next_maintenance)),
    }


def _ensure_tag_free(db: Session, asset_tag: str, exclude_id: Optional[str] = None):
    query = db.query(Asset.id).filter(Asset.asset_tag == asset_tag)
    if exclude_id:
        query = query.filter(Asset.id != exclude_id)
    if query.first():
        raise ConflictError(f"Asset with tag '{asset_tag}' already exists",
                            details={"assetTag": asset_tag}, field="assetTag")


# ----------------------------------------------------------------------
# Projection from purchases
# ----------------------------------------------------------------------

def project_purchase_assets(db: Session, purchase: Purchase, items: Dict[str, Item]):
    """Create one asset per isAsset line; runs once per purchase."""
    existing = {
        index for (index,) in
        db.query(Asset.purchase_line_index).filter(Asset.purchase_id == purchase.id).all()
    }
    created = 0
    for index, line in enumerate(purchase.items or []):
        if not line.get("isAsset") or index in existing:
            continue
        info = line.get("assetInfo") or {}
        item = items.get(line["item"])
        cost = line.get("totalCost") or 0
        db.add(Asset(
            business_id=purchase.business_id,
            name=info.get("name") or (item.name if item else "Asset"),
            category=info.get("category") or (item.category if item else None),
            location=info.get("location"),
            assigned_to=info.get("assignedTo"),
            purchase_id=purchase.id,
            purchase_line_index=index,
            item_id=line["item"],
            purchase_date=purchase.purchase_date,
            initial_cost=cost,
            current_value=cost,
            status=AssetStatus.active.value,
            tags=[],
            maintenance_history=[],
        ))
        created += 1

    purchase.assets_projected = True
    if created:
        logger.info("Projected %s asset(s) from purchase %s", created, purchase.id)


# ----------------------------------------------------------------------
# CRUD OPERATIONS
# ----------------------------------------------------------------------

def build_asset_filters(params: AssetsRequest):
    filters = []

    if params.status:
        filters.append(Asset.status == params.status.value)

    if params.category and params.category.lower() != "all":
        filters.append(Asset.category == params.category)

    if params.business_id:
        filters.append(Asset.business_id == params.business_id)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(or_(
            Asset.name.ilike(search_term),
            Asset.asset_tag.ilike(search_term),
            Asset.serial_number.ilike(search_term),
        ))

    return filters


def get_assets(db: Session, params: AssetsRequest) -> dict:
    query = db.query(Asset).filter(*build_asset_filters(params))
    total = query.with_entities(func.count(Asset.id)).scalar()
    assets = query.order_by(Asset.updated_at.desc()).offset(params.skip).limit(params.limit).all()
    return {"assets": assets, "total": total}


def get_asset_or_404(db: Session, asset_id: str, lock: bool = False) -> Asset:
    query = db.query(Asset).filter(Asset.id == asset_id)
    if lock:
        query = query.with_for_update()
    asset = query.first()
    if not asset:
        raise NotFoundError(f"Asset {asset_id} not found", field="id")
    return asset


def create_asset(db: Session, payload: AssetCreate) -> Asset:
    if payload.asset_tag:
        _ensure_tag_free(db, payload.asset_tag)

    data = payload.model_dump(exclude={"maintenance_schedule", "purchase_date", "status", "current_value"})
    asset = Asset(
        **data,
        purchase_date=as_naive_utc(payload.purchase_date),
        current_value=payload.current_value if payload.current_value is not None else payload.initial_cost,
        status=payload.status.value,
        maintenance_schedule=_schedule_dict(payload.maintenance_schedule),
        maintenance_history=[],
    )
    asset.tags = data.get("tags") or []
    db.add(asset)
    db.flush()
    return asset


def update_asset(db: Session, asset_id: str, payload: AssetUpdate) -> Asset:
    asset = get_asset_or_404(db, asset_id, lock=True)
    data = payload.model_dump(exclude_unset=True, exclude={"maintenance_schedule"})

    for required in ("name", "initial_cost", "current_value", "status", "tags"):
        if required in data and data[required] is None:
            raise ValidationError(f"{required} cannot be null", field=required)

    if data.get("asset_tag") and data["asset_tag"] != asset.asset_tag:
        _ensure_tag_free(db, data["asset_tag"], exclude_id=asset.id)

    if "status" in data:
        data["status"] = data["status"].value
    if "purchase_date" in data:
        data["purchase_date"] = as_naive_utc(data["purchase_date"])
    for key, value in data.items():
        setattr(asset, key, value)

    if "maintenance_schedule" in payload.model_fields_set:
        asset.maintenance_schedule = _schedule_dict(payload.maintenance_schedule)

    asset.updated_at = utcnow()
    return asset


def delete_asset(db: Session, asset_id: str):
    asset = get_asset_or_404(db, asset_id, lock=True)
    db.delete(asset)


def retire_asset(db: Session, asset_id: str) -> Asset:
    asset = get_asset_or_404(db, asset_id, lock=True)
    if asset.status == AssetStatus.retired.value:
        raise ValidationError("Asset is already retired", field="status")
    if asset.status not in (AssetStatus.active.value, AssetStatus.maintenance.value):
        raise ValidationError(f"Cannot retire an asset with status '{asset.status}'", field="status")
    asset.status = AssetStatus.retired.value
    asset.updated_at = utcnow()
    return asset


def update_asset_image(db: Session, asset_id: str, image_url: str) -> Asset:
    asset = get_asset_or_404(db, asset_id)
    asset.image_url = image_url
    asset.updated_at = utcnow()
    return asset


# ----------------------------------------------------------------------
# Maintenance and depreciation
# ----------------------------------------------------------------------

def record_maintenance(db: Session, asset_id: str, payload: MaintenanceIn) -> Asset:
    asset = get_asset_or_404(db, asset_id, lock=True)
    performed_on = as_naive_utc(payload.date) or utcnow()

    schedule = dict(asset.maintenance_schedule or {})
    frequency = payload.frequency.value if payload.frequency else schedule.get("frequency")

    record = {
        "date": performed_on.isoformat(),
        "description": payload.description,
        "performedBy": payload.performed_by,
        "cost": round_money(payload.cost, "cost"),
    }
    if payload.frequency:
        record["frequency"] = payload.frequency.value

    schedule.update({
        "frequency": frequency,
        "lastMaintenance": performed_on.isoformat(),
        "nextMaintenance": _iso(next_maintenance_date(performed_on, frequency)),
    })

    asset.maintenance_history = list(asset.maintenance_history or []) + [record]
    asset.maintenance_schedule = schedule
    asset.updated_at = utcnow()
    return asset


def get_maintenance_due(db: Session, asset_id: str, now: Optional[datetime] = None) -> dict:
    asset = get_asset_or_404(db, asset_id)
    schedule = asset.maintenance_schedule or {}
    next_maintenance = _parse(schedule.get("nextMaintenance"))
    now = now or utcnow()
    return {
        "asset_id": asset.id,
        "is_maintenance_due": next_maintenance is not None and next_maintenance <= now,
        "next_maintenance": next_maintenance,
        "last_maintenance": _parse(schedule.get("lastMaintenance")),
        "frequency": schedule.get("frequency"),
    }


def apply_depreciation(db: Session, asset_id: str, payload: DepreciationIn) -> dict:
    asset = get_asset_or_404(db, asset_id, lock=True)
    purchased_on = asset.purchase_date or asset.created_at
    as_of = as_naive_utc(payload.as_of) or utcnow()

    value = straight_line_value(asset.initial_cost or 0, payload.salvage_value, payload.years,
                                purchased_on, as_of)
    asset.current_value = round_money(value, "currentValue")
    asset.updated_at = utcnow()

    return {
        "asset_id": asset.id,
        "asset_name": asset.name,
        "initial_cost": asset.initial_cost,
        "current_value": asset.current_value,
        "depreciation_amount": round_money((asset.initial_cost or 0) - asset.current_value),
        "depreciation_rate": round_money(100 / payload.years),
        "depreciation_method": "straight-line",
        "years": payload.years,
        "salvage_value": payload.salvage_value,
    }


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------

def get_category_report(db: Session, business_id: Optional[str] = None) -> dict:
    query = db.query(
        Asset.category,
        func.count(Asset.id).label("count"),
        func.coalesce(func.sum(Asset.current_value), 0).label("total_value"),
    )
    if business_id:
        query = query.filter(Asset.business_id == business_id)
    rows = query.group_by(Asset.category).all()

    grouped: Dict[str, dict] = {}
    for category, count, total_value in rows:
        name = category or UNCATEGORIZED
        bucket = grouped.setdefault(name, {"category": name, "count": 0, "total_value": 0.0})
        bucket["count"] += int(count or 0)
        bucket["total_value"] += float(total_value or 0)

    categories = sorted(grouped.values(), key=lambda row: row["category"])
    for row in categories:
        row["total_value"] = round_money(row["total_value"])

    return {
        "categories": categories,
        "total_assets": sum(row["count"] for row in categories),
        "total_value": round_money(sum(row["total_value"] for row in categories)),
    }
