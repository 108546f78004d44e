# app/crud/stock_crud.py
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from shared.core.deadline import Deadline
from shared.core.errors import InsufficientStockError, NotFoundError

from ..domain.measurement import MEASUREMENT_KINDS, require_matching
from ..models.items import Item

logger = logging.getLogger(__name__)

# float noise tolerated before a result counts as negative
EPSILON = 1e-9


def lock_items(db: Session, item_ids: Iterable[str]) -> Dict[str, Item]:
    """Load items FOR UPDATE (a no-op on SQLite), failing on any unknown id."""
    ids = list(dict.fromkeys(item_ids))
    if not ids:
        return {}
    items = db.query(Item).filter(Item.id.in_(ids)).with_for_update().all()
    found = {item.id: item for item in items}
    missing = [item_id for item_id in ids if item_id not in found]
    if missing:
        raise NotFoundError(f"Item not found: {', '.join(missing)}",
                            details={"missing": missing}, field="items")
    return found


def item_pack_size(item: Item, measured_by: str) -> Optional[float]:
    """Units per pack when purchases of this item are counted in packs."""
    pack = item.pack_info or {}
    if item.is_material() and pack.get("isPack") and measured_by == "quantity":
        return float(pack.get("unitsPerPack") or 1)
    return None


def line_factor(line: dict, measured_by_key: str = "purchasedBy") -> float:
    package = line.get("packageInfo") or {}
    if line.get(measured_by_key) == "quantity" and package.get("isPackage"):
        return float(package.get("quantityPerPackage") or 1)
    return 1.0


def prepare_lines(lines: List[dict], items: Dict[str, Item], measured_by_key: str) -> List[dict]:
    """
    Check each line against its item's tracking type, default its unit to the
    item's unit, and stamp the item's pack size onto purchase lines so later
    reversals and rebuilds use the factor that was live when the line was written.
    """
    prepared = []
    for line in lines:
        item = items[line["item"]]
        kind = line[measured_by_key]
        require_matching(item.tracking_type, kind, item.name, measured_by_key)

        line = dict(line)
        unit_key = f"{kind}Unit"
        if kind != "quantity" and not line.get(unit_key):
            line[unit_key] = item.unit_for(kind)

        if measured_by_key == "purchasedBy":
            pack_size = item_pack_size(item, kind)
            if pack_size:
                package = dict(line.get("packageInfo") or {})
                package.update({"isPackage": True, "quantityPerPackage": pack_size})
                line["packageInfo"] = package
        prepared.append(line)
    return prepared


def stock_vectors(lines: Iterable[dict], measured_by_key: str) -> Dict[str, Dict[str, float]]:
    """Per-item stock effect in all five dimensions, pack factors applied."""
    vectors: Dict[str, Dict[str, float]] = {}
    for line in lines:
        vector = vectors.setdefault(line["item"], {kind: 0.0 for kind in MEASUREMENT_KINDS})
        factor = line_factor(line, measured_by_key)
        for kind in MEASUREMENT_KINDS:
            vector[kind] += float(line.get(kind) or 0) * factor
    return vectors


def apply_stock_delta(item: Item, delta: float):
    if abs(delta) < EPSILON:
        return
    current = item.tracked_stock()
    new_value = current + delta
    if new_value < -EPSILON:
        unit = item.unit_for(item.tracking_type) or "units"
        raise InsufficientStockError(
            f"Insufficient stock for '{item.name}': {current:g} {unit} available, {-delta:g} required",
            details={"itemId": item.id, "available": current, "requested": -delta},
            field="items",
        )
    item.set_tracked_stock(max(0.0, round(new_value, 9)))


def apply_vector_change(
    items: Dict[str, Item],
    old: Dict[str, Dict[str, float]],
    new: Dict[str, Dict[str, float]],
    direction: int,
    deadline: Optional[Deadline] = None,
):
    """
    Move each item's tracked field by (new - old) in its own dimension.
    direction is +1 for purchases and -1 for sales.
    """
    for item_id in list(dict.fromkeys(list(old) + list(new))):
        if deadline:
            deadline.check()
        item = items[item_id]
        kind = item.tracking_type
        before = old.get(item_id, {}).get(kind, 0.0)
        after = new.get(item_id, {}).get(kind, 0.0)
        apply_stock_delta(item, direction * (after - before))


def line_unit_cost(line: dict) -> Optional[float]:
    """
    Per stock-unit cost of a purchase line: costPerUnit when set, else
    totalCost over the measured amount. None when neither yields a value.
    """
    factor = line_factor(line)
    cost_per_unit = line.get("costPerUnit")
    if cost_per_unit:
        return float(cost_per_unit) / factor
    amount = float(line.get(line.get("purchasedBy", "quantity")) or 0)
    total_cost = float(line.get("totalCost") or 0)
    if amount and total_cost:
        return total_cost / amount / factor
    return None


def set_item_cost(item: Item, cost_per_unit: float, measured_by: str):
    item.cost = cost_per_unit
    if item_pack_size(item, measured_by):
        item.pack_info = {**(item.pack_info or {}), "costPerUnit": cost_per_unit}


def land_costs(items: Dict[str, Item], lines: List[dict]):
    """Last line wins: each received line sets its item's per-unit cost."""
    for line in lines:
        cost_per_unit = line_unit_cost(line)
        if cost_per_unit is not None:
            set_item_cost(items[line["item"]], cost_per_unit, line["purchasedBy"])
