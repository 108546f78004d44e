# app/crud/inventory_crud.py
"""
Inventory rebuilder.

Recomputes each item's tracked stock and unit cost from its received
purchases and completed sales. Partially received purchases are not
counted, even though the purchase mutators apply their stock. Safe to
run repeatedly: a second pass over an unchanged history finds nothing
to change.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from shared.core.database import run_in_transaction
from shared.core.deadline import Deadline
from shared.core.errors import AppError, NotFoundError
from shared.utils.dates import utcnow

from ..enum.inventory_enum import LIVE_SALE_STATUSES, PurchaseStatus
from ..models.items import Item
from ..models.purchases import Purchase, PurchaseItemRef
from ..models.sales import Sale, SaleItemRef
from .stock_crud import EPSILON, line_factor, line_unit_cost, set_item_cost

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


def _received_purchases(db: Session, item_id: str) -> List[Purchase]:
    # oldest first, so the last entry is the most recent (ties: later insert wins)
    return (
        db.query(Purchase)
        .join(PurchaseItemRef, PurchaseItemRef.purchase_id == Purchase.id)
        .filter(PurchaseItemRef.item_id == item_id, Purchase.status == PurchaseStatus.received.value)
        .order_by(Purchase.purchase_date, Purchase.created_at)
        .all()
    )


def _live_sales(db: Session, item_id: str) -> List[Sale]:
    return (
        db.query(Sale)
        .join(SaleItemRef, SaleItemRef.sale_id == Sale.id)
        .filter(SaleItemRef.item_id == item_id, Sale.status.in_(LIVE_SALE_STATUSES))
        .all()
    )


def rebuild_item_inventory(db: Session, item: Item, sync_price: bool = True) -> dict:
    kind = item.tracking_type
    purchases = _received_purchases(db, item.id)
    sales = _live_sales(db, item.id)

    purchased = sum(
        float(line.get(kind) or 0) * line_factor(line, "purchasedBy")
        for purchase in purchases for line in purchase.items or [] if line.get("item") == item.id
    )
    sold = sum(
        float(line.get(kind) or 0)
        for sale in sales for line in sale.items or [] if line.get("item") == item.id
    )
    stock = max(0.0, round(purchased - sold, 9))

    new_cost = None
    if purchases:
        latest_lines = [l for l in purchases[-1].items or [] if l.get("item") == item.id]
        for line in latest_lines:
            cost = line_unit_cost(line)
            if cost is not None:
                new_cost = cost

    # all computation happens before any write so a failing item leaves no partial state
    changes = {}
    current = item.tracked_stock()
    if abs(current - stock) > EPSILON:
        changes[kind] = {"from": current, "to": stock}
        item.set_tracked_stock(stock)

    if new_cost is not None and abs((item.cost or 0) - new_cost) > EPSILON:
        changes["cost"] = {"from": item.cost, "to": new_cost}
        set_item_cost(item, new_cost, kind)
        if sync_price and item.price != new_cost:
            changes["price"] = {"from": item.price, "to": new_cost}
            item.price = new_cost

    if changes:
        item.last_updated = utcnow()

    return {
        "item_id": item.id,
        "name": item.name,
        "sku": item.sku,
        "updated": bool(changes),
        "changes": changes,
    }


def rebuild_single_item(db: Session, item_id: str, sync_price: bool = True) -> dict:
    item = db.query(Item).filter(Item.id == item_id).with_for_update().first()
    if not item:
        raise NotFoundError(f"Item {item_id} not found", field="id")
    result = rebuild_item_inventory(db, item, sync_price)
    logger.info("Rebuilt inventory for item %s: %s", item.id, result["changes"] or "no changes")
    return result


def rebuild_inventory(db: Session, batch_size: int = DEFAULT_BATCH_SIZE, sync_price: bool = True,
                      retries: int = 3, deadline: Optional[Deadline] = None) -> dict:
    """Rebuild every item, one transaction per batch; per-item failures are collected, not raised."""
    item_ids = [item_id for (item_id,) in db.query(Item.id).order_by(Item.created_at, Item.id).all()]
    summary = {"processed": 0, "updated": 0, "errors": 0, "details": []}

    def rebuild_batch(session: Session, batch: List[str]) -> List[dict]:
        details = []
        items = session.query(Item).filter(Item.id.in_(batch)).with_for_update().all()
        for item in sorted(items, key=lambda i: batch.index(i.id)):
            if deadline:
                deadline.check()
            try:
                details.append(rebuild_item_inventory(session, item, sync_price))
            except (AppError, ArithmeticError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Inventory rebuild failed for item %s: %s", item.id, exc)
                details.append({
                    "item_id": item.id, "name": item.name, "sku": item.sku,
                    "updated": False, "changes": {}, "error": str(exc),
                })
        return details

    for start in range(0, len(item_ids), batch_size):
        batch = item_ids[start:start + batch_size]
        details = run_in_transaction(db, lambda session: rebuild_batch(session, batch),
                                     retries=retries, deadline=deadline)
        for detail in details:
            summary["processed"] += 1
            if detail.get("error"):
                summary["errors"] += 1
            elif detail["updated"]:
                summary["updated"] += 1
        summary["details"].extend(details)
        logger.info("Inventory rebuild progress: %s/%s items (%s updated, %s errors)",
                    summary["processed"], len(item_ids), summary["updated"], summary["errors"])

    return summary
