# app/crud/relationships_crud.py
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from shared.core.deadline import Deadline
from shared.core.errors import ConflictError, NotFoundError, ValidationError

from ..domain.measurement import matching_measurement
from ..domain.sequences import next_sku
from ..models.items import Item
from ..schemas.items_schemas import BreakdownIn

logger = logging.getLogger(__name__)


def component_ids(components: Optional[List[dict]]) -> List[str]:
    return list(dict.fromkeys(c["item"] for c in components or [] if c.get("item")))


def _get_item(db: Session, item_id: str, lock: bool = False) -> Optional[Item]:
    query = db.query(Item).filter(Item.id == item_id)
    if lock:
        query = query.with_for_update()
    return query.first()


# ----------------------------------------------------------------------
# components <-> usedInProducts
# ----------------------------------------------------------------------

def sync_components(db: Session, product_id: str, old_components: Optional[List[dict]],
                    new_components: Optional[List[dict]]) -> Dict[str, List[str]]:
    """Add/remove product_id on the materials that entered/left the component list."""
    ids_old = component_ids(old_components)
    ids_new = component_ids(new_components)
    added = [i for i in ids_new if i not in ids_old]
    removed = [i for i in ids_old if i not in ids_new]

    for material_id in added:
        material = _get_item(db, material_id, lock=True)
        if not material:
            logger.warning("Component material %s of product %s not found; skipping", material_id, product_id)
            continue
        if product_id not in (material.used_in_products or []):
            material.used_in_products = list(material.used_in_products or []) + [product_id]

    for material_id in removed:
        material = _get_item(db, material_id, lock=True)
        if not material:
            logger.warning("Former component material %s of product %s not found; skipping", material_id, product_id)
            continue
        material.used_in_products = [p for p in material.used_in_products or [] if p != product_id]

    return {"added": added, "removed": removed}


def remove_product_references(db: Session, product: Item):
    sync_components(db, product.id, product.components, [])


# ----------------------------------------------------------------------
# derivedFrom <-> derivedItems
# ----------------------------------------------------------------------

def _new_derived_item(db: Session, source: Item, entry: dict, stock: float) -> Item:
    if not entry.get("name"):
        raise ValidationError("New derived items require a name", field="derivedItems.name")

    sku = entry.get("sku")
    if sku:
        if db.query(Item.id).filter(Item.sku == sku).first():
            raise ConflictError(f"Item with sku '{sku}' already exists", field="sku")
    else:
        sku = next_sku(s for (s,) in db.query(Item.sku).all())

    item = Item(
        business_id=source.business_id,
        sku=sku,
        name=entry["name"],
        category=entry.get("category") or source.category,
        description=entry.get("description"),
        tags=entry.get("tags") or [],
        item_type=source.item_type,
        tracking_type=source.tracking_type,
        weight_unit=source.weight_unit,
        length_unit=source.length_unit,
        area_unit=source.area_unit,
        volume_unit=source.volume_unit,
        price=entry["price"] if entry.get("price") is not None else source.price,
        price_type=source.price_type,
        cost=source.cost or 0,
        components=[],
        used_in_products=[],
        derived_items=[],
    )
    item.set_tracked_stock(stock)
    db.add(item)
    # pending rows must be visible to the next SKU scan
    db.flush()
    return item


def breakdown_item(db: Session, source_id: str, payload: BreakdownIn, deadline: Optional[Deadline] = None):
    """
    Create or link derived items under a source item.

    The source's stock is left untouched; callers record compensating
    sales/purchases if they want it decremented.
    """
    source = _get_item(db, source_id, lock=True)
    if not source:
        raise NotFoundError(f"Item {source_id} not found", field="id")

    derived_entries = list(source.derived_items or [])
    derived = []
    for entry_in in payload.derived_items:
        if deadline:
            deadline.check()
        entry = entry_in.model_dump(mode="json", by_alias=True, exclude_none=True)
        measurement = matching_measurement(entry, source.tracking_type)

        if entry.get("itemId"):
            item = _get_item(db, entry["itemId"], lock=True)
            if not item:
                raise NotFoundError(f"Item {entry['itemId']} not found", field="derivedItems.itemId")
            if item.id == source.id:
                raise ValidationError("An item cannot be derived from itself", field="derivedItems.itemId")
            current_parent = (item.derived_from or {}).get("item")
            if current_parent and current_parent != source.id:
                raise ConflictError(f"Item '{item.name}' is already derived from item {current_parent}",
                                    field="derivedItems.itemId")
        else:
            item = _new_derived_item(db, source, entry, measurement.value)

        link = measurement.to_fields()
        item.derived_from = {"item": source.id, **link}
        derived_entries = [e for e in derived_entries if e.get("item") != item.id]
        derived_entries.append({"item": item.id, **link})
        derived.append(item)

    source.derived_items = derived_entries
    return {"source_item": source, "derived_items": derived}


def get_derived_items(db: Session, item_id: str) -> List[Item]:
    source = _get_item(db, item_id)
    if not source:
        raise NotFoundError(f"Item {item_id} not found", field="id")
    ids = [e["item"] for e in source.derived_items or []]
    if not ids:
        return []
    by_id = {i.id: i for i in db.query(Item).filter(Item.id.in_(ids)).all()}
    return [by_id[i] for i in ids if i in by_id]


def get_parent_item(db: Session, item_id: str) -> Item:
    item = _get_item(db, item_id)
    if not item:
        raise NotFoundError(f"Item {item_id} not found", field="id")
    parent_id = (item.derived_from or {}).get("item")
    parent = _get_item(db, parent_id) if parent_id else None
    if not parent:
        raise NotFoundError("Parent item not found", field="id")
    return parent


# ----------------------------------------------------------------------
# Diagnostics and rebuild
# ----------------------------------------------------------------------

def get_relationships(db: Session, item_id: str) -> dict:
    item = _get_item(db, item_id)
    if not item:
        raise NotFoundError(f"Item {item_id} not found", field="id")

    products = []
    if item.used_in_products:
        rows = db.query(Item).filter(Item.id.in_(item.used_in_products)).all()
        for product in sorted(rows, key=lambda p: item.used_in_products.index(p.id)):
            amount = next((c.get("quantity") for c in product.components or [] if c.get("item") == item.id), None)
            products.append({"id": product.id, "name": product.name, "quantity": amount})

    return {
        "item_id": item.id,
        "name": item.name,
        "item_type": item.item_type,
        "is_used_in_products": bool(products),
        "products": products,
        "components": list(item.components or []),
        "derived_from": item.derived_from,
        "derived_items": list(item.derived_items or []),
    }


def rebuild_relationships(db: Session, deadline: Optional[Deadline] = None) -> dict:
    """Recompute every usedInProducts and derivedItems list from components and derivedFrom."""
    items = db.query(Item).with_for_update().order_by(Item.created_at, Item.id).all()
    by_id = {item.id: item for item in items}

    used_in: Dict[str, List[str]] = {item.id: [] for item in items}
    derived: Dict[str, List[dict]] = {item.id: [] for item in items}
    products_processed = 0
    derived_links = 0

    for item in items:
        if deadline:
            deadline.check()
        if item.is_product() and item.components:
            products_processed += 1
            for material_id in component_ids(item.components):
                if material_id not in used_in:
                    logger.warning("Component material %s of product %s not found; skipping", material_id, item.id)
                    continue
                used_in[material_id].append(item.id)

        parent_id = (item.derived_from or {}).get("item")
        if parent_id:
            if parent_id not in derived:
                logger.warning("Source item %s of derived item %s not found; skipping", parent_id, item.id)
                continue
            link = {k: v for k, v in item.derived_from.items() if k != "item"}
            derived[parent_id].append({"item": item.id, **link})
            derived_links += 1

    materials_updated = 0
    for item_id, item in by_id.items():
        if list(item.used_in_products or []) != used_in[item_id]:
            item.used_in_products = used_in[item_id]
            materials_updated += 1
        if list(item.derived_items or []) != derived[item_id]:
            item.derived_items = derived[item_id]

    logger.info("Relationship rebuild: %s products, %s materials updated, %s derived links",
                products_processed, materials_updated, derived_links)
    return {
        "products_processed": products_processed,
        "materials_updated": materials_updated,
        "derived_links_rebuilt": derived_links,
    }
