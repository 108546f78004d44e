# app/crud/purchases_crud.py
import logging
from collections import OrderedDict
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.core.deadline import Deadline
from shared.core.errors import NotFoundError, ValidationError
from shared.utils.dates import as_naive_utc, utcnow

from ..domain.measurement import add_to_breakdown, empty_breakdown, rounded_breakdown
from ..domain.totals import compute_totals, normalize_line, round_money
from ..enum.inventory_enum import LIVE_PURCHASE_STATUSES, PurchaseStatus
from ..models.purchases import Purchase, PurchaseItemRef
from ..schemas.purchases_schemas import PurchaseCreate, PurchaseLineIn, PurchasesRequest, PurchaseUpdate
from . import assets_crud
from .stock_crud import apply_vector_change, land_costs, lock_items, prepare_lines, stock_vectors

logger = logging.getLogger(__name__)

DIRECTION = 1


def is_live(status: str) -> bool:
    return status in LIVE_PURCHASE_STATUSES


def _line_dicts(lines: List[PurchaseLineIn]) -> List[dict]:
    dumped = []
    for line in lines:
        data = line.model_dump(mode="json", by_alias=True, exclude_none=True)
        kind = data["purchasedBy"]
        # a bare totalCost implies the unit cost
        if not data.get("costPerUnit") and data.get("totalCost") and data.get(kind):
            data["costPerUnit"] = data["totalCost"] / data[kind]
        dumped.append(data)
    return dumped


def _normalize(lines: List[dict]) -> List[dict]:
    return [normalize_line(line, "purchasedBy", "costPerUnit", "totalCost") for line in lines]


def _item_refs(lines: List[dict]) -> List[PurchaseItemRef]:
    return [PurchaseItemRef(item_id=item_id) for item_id in dict.fromkeys(l["item"] for l in lines)]


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------

def build_purchase_filters(params: PurchasesRequest):
    filters = []

    if params.status and params.status.lower() != "all":
        filters.append(Purchase.status == params.status)

    if params.business_id:
        filters.append(Purchase.business_id == params.business_id)

    if params.start_date:
        filters.append(Purchase.purchase_date >= params.start_date)

    if params.end_date:
        filters.append(Purchase.purchase_date <= params.end_date)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(or_(
            Purchase.invoice_number.ilike(search_term),
            Purchase.notes.ilike(search_term),
        ))

    return filters


def get_purchases(db: Session, params: PurchasesRequest) -> dict:
    query = db.query(Purchase).filter(*build_purchase_filters(params))
    total = query.with_entities(func.count(Purchase.id)).scalar()
    purchases = (
        query
        .order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )
    return {"purchases": purchases, "total": total}


def get_purchase_or_404(db: Session, purchase_id: str, lock: bool = False) -> Purchase:
    query = db.query(Purchase).filter(Purchase.id == purchase_id)
    if lock:
        query = query.with_for_update()
    purchase = query.first()
    if not purchase:
        raise NotFoundError(f"Purchase {purchase_id} not found", field="id")
    return purchase


# ----------------------------------------------------------------------
# Mutations (callers run these through run_in_transaction)
# ----------------------------------------------------------------------

def create_purchase(db: Session, payload: PurchaseCreate, deadline: Optional[Deadline] = None) -> Purchase:
    lines = _line_dicts(payload.items)
    items = lock_items(db, [line["item"] for line in lines])
    lines = _normalize(prepare_lines(lines, items, "purchasedBy"))
    totals = compute_totals(lines, "totalCost", payload.discount_amount, payload.tax_rate, payload.shipping_cost)

    purchase = Purchase(
        business_id=payload.business_id,
        supplier=payload.supplier.model_dump(mode="json", by_alias=True) if payload.supplier else None,
        items=lines,
        invoice_number=payload.invoice_number,
        purchase_date=as_naive_utc(payload.purchase_date) or utcnow(),
        tax_rate=payload.tax_rate,
        notes=payload.notes,
        payment_method=payload.payment_method.value,
        status=payload.status.value,
        assets_projected=False,
        **totals,
    )
    purchase.item_refs = _item_refs(lines)
    db.add(purchase)
    db.flush()

    if is_live(purchase.status):
        apply_vector_change(items, {}, stock_vectors(lines, "purchasedBy"), DIRECTION, deadline)
        land_costs(items, lines)

    if purchase.status == PurchaseStatus.received.value:
        assets_crud.project_purchase_assets(db, purchase, items)

    logger.info("Created purchase %s (%s, %s lines)", purchase.id, purchase.status, len(lines))
    return purchase


def update_purchase(db: Session, purchase_id: str, payload: PurchaseUpdate,
                    deadline: Optional[Deadline] = None) -> Purchase:
    purchase = get_purchase_or_404(db, purchase_id, lock=True)
    fields = payload.model_fields_set

    old_status = purchase.status
    new_status = payload.status.value if payload.status else old_status
    old_lines = list(purchase.items or [])
    items_changed = "items" in fields and payload.items is not None

    incoming = _line_dicts(payload.items) if items_changed else old_lines
    items = lock_items(db, [line["item"] for line in old_lines + incoming])

    # lines are (re)stamped when written or when they first go live
    if items_changed or (is_live(new_status) and not is_live(old_status)):
        new_lines = _normalize(prepare_lines(incoming, items, "purchasedBy"))
    else:
        new_lines = old_lines

    old_vectors = stock_vectors(old_lines, "purchasedBy") if is_live(old_status) else {}
    new_vectors = stock_vectors(new_lines, "purchasedBy") if is_live(new_status) else {}
    apply_vector_change(items, old_vectors, new_vectors, DIRECTION, deadline)

    if is_live(new_status) and (items_changed or not is_live(old_status)):
        land_costs(items, new_lines)

    for key in ("business_id", "invoice_number", "notes", "tax_rate", "discount_amount", "shipping_cost"):
        if key in fields and getattr(payload, key) is not None:
            setattr(purchase, key, getattr(payload, key))
    if "supplier" in fields:
        purchase.supplier = payload.supplier.model_dump(mode="json", by_alias=True) if payload.supplier else None
    if "purchase_date" in fields and payload.purchase_date:
        purchase.purchase_date = as_naive_utc(payload.purchase_date)
    if payload.payment_method:
        purchase.payment_method = payload.payment_method.value

    totals = compute_totals(new_lines, "totalCost", purchase.discount_amount, purchase.tax_rate,
                            purchase.shipping_cost)
    for key, value in totals.items():
        setattr(purchase, key, value)

    purchase.items = new_lines
    if items_changed:
        purchase.item_refs = _item_refs(new_lines)
    purchase.status = new_status
    purchase.updated_at = utcnow()

    if new_status == PurchaseStatus.received.value and not purchase.assets_projected:
        assets_crud.project_purchase_assets(db, purchase, items)

    return purchase


def delete_purchase(db: Session, purchase_id: str, deadline: Optional[Deadline] = None):
    """Reverse a live purchase's stock effect and drop it. Projected assets are kept."""
    purchase = get_purchase_or_404(db, purchase_id, lock=True)
    lines = list(purchase.items or [])

    if is_live(purchase.status):
        items = lock_items(db, [line["item"] for line in lines])
        apply_vector_change(items, stock_vectors(lines, "purchasedBy"), {}, DIRECTION, deadline)

    db.delete(purchase)
    logger.info("Deleted purchase %s (%s)", purchase_id, purchase.status)


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------

def get_purchase_report(db: Session, start_date: Optional[datetime], end_date: Optional[datetime],
                        status: Optional[str] = None) -> dict:
    params = PurchasesRequest(start_date=start_date, end_date=end_date, status=status)
    purchases = (
        db.query(Purchase)
        .filter(*build_purchase_filters(params))
        .order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc())
        .all()
    )
    total_cost = round_money(sum(p.total or 0 for p in purchases))
    count = len(purchases)
    return {
        "total_purchases": count,
        "total_cost": total_cost,
        "average_purchase_value": round_money(total_cost / count) if count else 0,
        "purchases": purchases,
    }


def get_purchase_trends(db: Session, start_date: Optional[datetime], end_date: Optional[datetime]) -> dict:
    if not start_date or not end_date:
        raise ValidationError("startDate and endDate are required", field="startDate" if not start_date else "endDate")
    if start_date > end_date:
        raise ValidationError("startDate must be before endDate", field="startDate")

    params = PurchasesRequest(start_date=start_date, end_date=end_date)
    purchases = (
        db.query(Purchase)
        .filter(*build_purchase_filters(params))
        .order_by(Purchase.purchase_date)
        .all()
    )

    days = OrderedDict()
    for purchase in purchases:
        day = days.setdefault(purchase.purchase_date.date().isoformat(),
                              {"count": 0, "total_cost": 0.0, "breakdown": empty_breakdown()})
        day["count"] += 1
        day["total_cost"] += purchase.total or 0
        add_to_breakdown(day["breakdown"], purchase.items or [], "purchasedBy",
                         lambda line: float(line.get("totalCost") or 0))

    return {
        "start_date": start_date,
        "end_date": end_date,
        "trends": [
            {
                "date": day,
                "count": v["count"],
                "total_cost": round_money(v["total_cost"]),
                "measurement_breakdown": rounded_breakdown(v["breakdown"]),
            }
            for day, v in days.items()
        ],
    }
