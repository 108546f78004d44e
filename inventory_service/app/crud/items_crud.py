# app/crud/items_crud.py
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.core.errors import ConflictError, NotFoundError, ValidationError
from shared.utils.dates import utcnow

from ..domain.sequences import next_sku
from ..models.items import Item
from ..models.purchases import Purchase, PurchaseItemRef
from ..models.sales import Sale, SaleItemRef
from ..schemas.items_schemas import ItemCreate, ItemOut, ItemSummary, ItemUpdate, ItemsRequest
from . import relationships_crud

logger = logging.getLogger(__name__)

NOT_NULL_FIELDS = (
    "sku", "name", "item_type", "tracking_type", "price", "price_type", "cost", "tags",
    "quantity", "weight", "length", "area", "volume",
    "weight_unit", "length_unit", "area_unit", "volume_unit",
)


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------

def build_item_filters(params: ItemsRequest):
    filters = []

    if params.category:
        filters.append(Item.category == params.category)

    if params.item_type:
        filters.append(Item.item_type == params.item_type.value)

    if params.tracking_type:
        filters.append(Item.tracking_type == params.tracking_type.value)

    if params.business_id:
        filters.append(Item.business_id == params.business_id)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(or_(
            Item.name.ilike(search_term),
            Item.sku.ilike(search_term),
            Item.description.ilike(search_term),
        ))

    return filters


def get_items(db: Session, params: ItemsRequest) -> dict:
    query = db.query(Item).filter(*build_item_filters(params)).order_by(Item.name, Item.id)

    if params.tag:
        # tags live in a JSON array; filter in Python to stay backend-neutral
        matching = [item for item in query.all() if params.tag in (item.tags or [])]
        total = len(matching)
        page = matching[params.skip:params.skip + params.limit]
    else:
        total = query.with_entities(func.count(Item.id)).scalar()
        page = query.offset(params.skip).limit(params.limit).all()

    return {"items": page, "total": total, "skip": params.skip, "limit": params.limit}


def get_item_by_id(db: Session, item_id: str) -> Optional[Item]:
    return db.query(Item).filter(Item.id == item_id).first()


def get_item_or_404(db: Session, item_id: str) -> Item:
    item = get_item_by_id(db, item_id)
    if not item:
        raise NotFoundError(f"Item {item_id} not found", field="id")
    return item


def populate_item(db: Session, item: Item) -> ItemOut:
    """Expand every item reference into a summary; dangling ids stay as ids."""
    ref_ids = set(relationships_crud.component_ids(item.components))
    ref_ids.update(item.used_in_products or [])
    ref_ids.update(e.get("item") for e in item.derived_items or [])
    if item.derived_from:
        ref_ids.add(item.derived_from.get("item"))
    ref_ids.discard(None)

    summaries: Dict[str, dict] = {}
    if ref_ids:
        for ref in db.query(Item).filter(Item.id.in_(ref_ids)).all():
            summaries[ref.id] = ItemSummary.model_validate(ref).model_dump(by_alias=True)

    def expand(ref_id):
        return summaries.get(ref_id, ref_id)

    out = ItemOut.model_validate(item)
    out.components = [{**c, "item": expand(c.get("item"))} for c in item.components or []]
    out.used_in_products = [expand(p) for p in item.used_in_products or []]
    out.derived_items = [{**e, "item": expand(e.get("item"))} for e in item.derived_items or []]
    if item.derived_from:
        out.derived_from = {**item.derived_from, "item": expand(item.derived_from.get("item"))}
    return out


def get_next_sku(db: Session) -> str:
    return next_sku(sku for (sku,) in db.query(Item.sku).all())


def get_categories(db: Session) -> List[str]:
    rows = db.query(Item.category).filter(Item.category.isnot(None)).distinct().all()
    return sorted({category for (category,) in rows if category and category.strip()})


def get_tags(db: Session) -> List[str]:
    tags = set()
    for (item_tags,) in db.query(Item.tags).all():
        tags.update(t for t in item_tags or [] if t and t.strip())
    return sorted(tags)


def get_item_purchases(db: Session, item_id: str) -> List[Purchase]:
    get_item_or_404(db, item_id)
    return (
        db.query(Purchase)
        .join(PurchaseItemRef, PurchaseItemRef.purchase_id == Purchase.id)
        .filter(PurchaseItemRef.item_id == item_id)
        .order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc())
        .all()
    )


def get_item_sales(db: Session, item_id: str) -> List[Sale]:
    get_item_or_404(db, item_id)
    return (
        db.query(Sale)
        .join(SaleItemRef, SaleItemRef.sale_id == Sale.id)
        .filter(SaleItemRef.item_id == item_id)
        .order_by(Sale.sale_date.desc(), Sale.created_at.desc())
        .all()
    )


# ----------------------------------------------------------------------
# Mutations (callers run these through run_in_transaction)
# ----------------------------------------------------------------------

def _ensure_sku_free(db: Session, sku: str, exclude_id: Optional[str] = None):
    query = db.query(Item.id).filter(Item.sku == sku)
    if exclude_id:
        query = query.filter(Item.id != exclude_id)
    if query.first():
        raise ConflictError(f"Item with sku '{sku}' already exists", details={"sku": sku}, field="sku")


def _check_components(item_id: Optional[str], item_type: str, components: List[dict]):
    if not components:
        return
    if item_type not in ("product", "both"):
        raise ValidationError("Only products can have components", field="components")
    if item_id and item_id in relationships_crud.component_ids(components):
        raise ValidationError("An item cannot be a component of itself", field="components")


def create_item(db: Session, payload: ItemCreate) -> Item:
    data = payload.model_dump(mode="json", exclude={"pack_info", "components"}, exclude_none=True)
    data["sku"] = data.get("sku") or get_next_sku(db)
    _ensure_sku_free(db, data["sku"])

    components = [c.model_dump(mode="json", by_alias=True, exclude_none=True) for c in payload.components or []]
    _check_components(None, payload.item_type.value, components)

    item = Item(
        **data,
        pack_info=payload.pack_info.model_dump(mode="json", by_alias=True) if payload.pack_info else None,
        components=components,
        used_in_products=[],
        derived_items=[],
    )
    db.add(item)
    db.flush()

    relationships_crud.sync_components(db, item.id, [], components)
    return item


def update_item(db: Session, item_id: str, payload: ItemUpdate) -> Item:
    item = db.query(Item).filter(Item.id == item_id).with_for_update().first()
    if not item:
        raise NotFoundError(f"Item {item_id} not found", field="id")

    data = payload.model_dump(mode="json", exclude_unset=True, exclude={"pack_info", "components"})
    for required in NOT_NULL_FIELDS:
        if required in data and data[required] is None:
            raise ValidationError(f"{required} cannot be null", field=required)

    if data.get("sku") and data["sku"] != item.sku:
        _ensure_sku_free(db, data["sku"], exclude_id=item.id)

    if "pack_info" in payload.model_fields_set:
        item.pack_info = payload.pack_info.model_dump(mode="json", by_alias=True) if payload.pack_info else None

    old_components = list(item.components or [])
    new_components = old_components
    if "components" in payload.model_fields_set:
        new_components = [c.model_dump(mode="json", by_alias=True, exclude_none=True) for c in payload.components or []]

    item_type = data.get("item_type", item.item_type)
    _check_components(item.id, getattr(item_type, "value", item_type), new_components)

    for key, value in data.items():
        setattr(item, key, value)
    item.components = new_components
    item.last_updated = utcnow()

    relationships_crud.sync_components(db, item.id, old_components, new_components)
    return item


def delete_item(db: Session, item_id: str):
    item = db.query(Item).filter(Item.id == item_id).with_for_update().first()
    if not item:
        raise NotFoundError(f"Item {item_id} not found", field="id")

    references = {}
    purchase_count = db.query(PurchaseItemRef).filter(PurchaseItemRef.item_id == item_id).count()
    if purchase_count:
        references["purchases"] = purchase_count
    sale_count = db.query(SaleItemRef).filter(SaleItemRef.item_id == item_id).count()
    if sale_count:
        references["sales"] = sale_count
    if item.used_in_products:
        references["usedInProducts"] = list(item.used_in_products)
    if item.derived_items:
        references["derivedItems"] = [e.get("item") for e in item.derived_items]
    if item.derived_from:
        references["derivedFrom"] = item.derived_from.get("item")

    if references:
        raise ConflictError(f"Item '{item.name}' is still referenced and cannot be deleted",
                            details=references, field="id")

    relationships_crud.remove_product_references(db, item)
    db.delete(item)


def update_item_image(db: Session, item_id: str, image_url: str) -> Item:
    item = get_item_or_404(db, item_id)
    item.image_url = image_url
    item.last_updated = utcnow()
    return item
