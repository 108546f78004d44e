# app/crud/sales_crud.py
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.core.deadline import Deadline
from shared.core.errors import ConflictError, NotFoundError, ValidationError
from shared.utils.dates import as_naive_utc, utcnow

from ..domain.measurement import add_to_breakdown, empty_breakdown, rounded_breakdown
from ..domain.sequences import next_invoice_number
from ..domain.totals import compute_totals, normalize_line, payment_status, round_money
from ..enum.inventory_enum import LIVE_SALE_STATUSES
from ..models.items import Item
from ..models.sales import Sale, SaleItemRef
from ..schemas.sales_schemas import PaymentIn, SaleCreate, SaleLineIn, SalesRequest, SaleUpdate
from .stock_crud import apply_vector_change, lock_items, prepare_lines, stock_vectors

logger = logging.getLogger(__name__)

# sales consume stock
DIRECTION = -1


def is_live(status: str) -> bool:
    return status in LIVE_SALE_STATUSES


def _line_dicts(lines: List[SaleLineIn], items: Dict[str, Item]) -> List[dict]:
    dumped = []
    for line in lines:
        data = line.model_dump(mode="json", by_alias=True, exclude_none=True)
        item = items[data["item"]]
        data.setdefault("name", item.name)
        if data.get("priceAtSale") is None:
            kind = data["soldBy"]
            if not data.get("totalPrice") or not data.get(kind):
                data["priceAtSale"] = item.price
            else:
                data["priceAtSale"] = data["totalPrice"] / data[kind]
        dumped.append(data)
    return dumped


def _normalize(lines: List[dict]) -> List[dict]:
    return [normalize_line(line, "soldBy", "priceAtSale", "totalPrice") for line in lines]


def _item_refs(lines: List[dict]) -> List[SaleItemRef]:
    return [SaleItemRef(item_id=item_id) for item_id in dict.fromkeys(l["item"] for l in lines)]


def _ensure_invoice_free(db: Session, invoice_number: str, exclude_id: Optional[str] = None):
    query = db.query(Sale.id).filter(Sale.invoice_number == invoice_number)
    if exclude_id:
        query = query.filter(Sale.id != exclude_id)
    if query.first():
        raise ConflictError(f"Sale with invoice number '{invoice_number}' already exists",
                            details={"invoiceNumber": invoice_number}, field="invoiceNumber")


def _refresh_payment_status(sale: Sale, amount_paid: float):
    amount_paid = round_money(amount_paid, "amountPaid")
    sale.payment_status = {
        "amountPaid": amount_paid,
        "status": payment_status(amount_paid, sale.total or 0),
    }


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------

def build_sale_filters(params: SalesRequest):
    filters = []

    if params.status and params.status.lower() != "all":
        filters.append(Sale.status == params.status)

    if params.business_id:
        filters.append(Sale.business_id == params.business_id)

    if params.start_date:
        filters.append(Sale.sale_date >= params.start_date)

    if params.end_date:
        filters.append(Sale.sale_date <= params.end_date)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(or_(
            Sale.invoice_number.ilike(search_term),
            Sale.notes.ilike(search_term),
        ))

    return filters


def get_sales(db: Session, params: SalesRequest) -> dict:
    query = db.query(Sale).filter(*build_sale_filters(params))
    total = query.with_entities(func.count(Sale.id)).scalar()
    sales = (
        query
        .order_by(Sale.sale_date.desc(), Sale.created_at.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )
    return {"sales": sales, "total": total}


def get_sale_or_404(db: Session, sale_id: str, lock: bool = False) -> Sale:
    query = db.query(Sale).filter(Sale.id == sale_id)
    if lock:
        query = query.with_for_update()
    sale = query.first()
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found", field="id")
    return sale


def get_next_invoice_number(db: Session, width: int) -> str:
    return next_invoice_number((n for (n,) in db.query(Sale.invoice_number).all()), width)


# ----------------------------------------------------------------------
# Mutations (callers run these through run_in_transaction)
# ----------------------------------------------------------------------

def create_sale(db: Session, payload: SaleCreate, invoice_width: int = 6,
                deadline: Optional[Deadline] = None) -> Sale:
    items = lock_items(db, [line.item for line in payload.items])
    lines = _normalize(prepare_lines(_line_dicts(payload.items, items), items, "soldBy"))
    totals = compute_totals(lines, "totalPrice", payload.discount_amount, payload.tax_rate, payload.shipping_cost)

    invoice_number = payload.invoice_number or get_next_invoice_number(db, invoice_width)
    _ensure_invoice_free(db, invoice_number)

    sale = Sale(
        business_id=payload.business_id,
        invoice_number=invoice_number,
        customer=payload.customer.model_dump(mode="json", by_alias=True) if payload.customer else None,
        items=lines,
        sale_date=as_naive_utc(payload.sale_date) or utcnow(),
        tax_rate=payload.tax_rate,
        payment_method=payload.payment_method.value,
        notes=payload.notes,
        status=payload.status.value,
        payments=[],
        **totals,
    )

    amount_paid = payload.payment_status.amount_paid if payload.payment_status else 0
    if amount_paid > 0:
        sale.payments = [{
            "amount": round_money(amount_paid, "amountPaid"),
            "date": sale.sale_date.isoformat(),
            "method": sale.payment_method,
        }]
    _refresh_payment_status(sale, amount_paid)

    sale.item_refs = _item_refs(lines)
    db.add(sale)
    db.flush()

    if is_live(sale.status):
        apply_vector_change(items, {}, stock_vectors(lines, "soldBy"), DIRECTION, deadline)

    logger.info("Created sale %s (invoice %s, %s)", sale.id, sale.invoice_number, sale.status)
    return sale


def update_sale(db: Session, sale_id: str, payload: SaleUpdate, deadline: Optional[Deadline] = None) -> Sale:
    sale = get_sale_or_404(db, sale_id, lock=True)
    fields = payload.model_fields_set

    old_status = sale.status
    new_status = payload.status.value if payload.status else old_status
    old_lines = list(sale.items or [])
    items_changed = "items" in fields and payload.items is not None

    items = lock_items(db, [line["item"] for line in old_lines] +
                       ([line.item for line in payload.items] if items_changed else []))
    # lines are (re)checked when written or when they first go live
    if items_changed:
        new_lines = _normalize(prepare_lines(_line_dicts(payload.items, items), items, "soldBy"))
    elif is_live(new_status) and not is_live(old_status):
        new_lines = prepare_lines(old_lines, items, "soldBy")
    else:
        new_lines = old_lines

    old_vectors = stock_vectors(old_lines, "soldBy") if is_live(old_status) else {}
    new_vectors = stock_vectors(new_lines, "soldBy") if is_live(new_status) else {}
    apply_vector_change(items, old_vectors, new_vectors, DIRECTION, deadline)

    if payload.invoice_number and payload.invoice_number != sale.invoice_number:
        _ensure_invoice_free(db, payload.invoice_number, exclude_id=sale.id)
        sale.invoice_number = payload.invoice_number
    for key in ("business_id", "notes", "tax_rate", "discount_amount", "shipping_cost"):
        if key in fields and getattr(payload, key) is not None:
            setattr(sale, key, getattr(payload, key))
    if "customer" in fields:
        sale.customer = payload.customer.model_dump(mode="json", by_alias=True) if payload.customer else None
    if "sale_date" in fields and payload.sale_date:
        sale.sale_date = as_naive_utc(payload.sale_date)
    if payload.payment_method:
        sale.payment_method = payload.payment_method.value

    totals = compute_totals(new_lines, "totalPrice", sale.discount_amount, sale.tax_rate, sale.shipping_cost)
    for key, value in totals.items():
        setattr(sale, key, value)

    sale.items = new_lines
    if items_changed:
        sale.item_refs = _item_refs(new_lines)
    sale.status = new_status

    amount_paid = (sale.payment_status or {}).get("amountPaid", 0)
    if payload.payment_status is not None:
        amount_paid = payload.payment_status.amount_paid
    # total may have moved, so the derived status is always recomputed
    _refresh_payment_status(sale, amount_paid)
    sale.updated_at = utcnow()
    return sale


def delete_sale(db: Session, sale_id: str, deadline: Optional[Deadline] = None):
    sale = get_sale_or_404(db, sale_id, lock=True)
    lines = list(sale.items or [])

    if is_live(sale.status):
        items = lock_items(db, [line["item"] for line in lines])
        apply_vector_change(items, stock_vectors(lines, "soldBy"), {}, DIRECTION, deadline)

    db.delete(sale)
    logger.info("Deleted sale %s (%s)", sale_id, sale.status)


def add_payment(db: Session, sale_id: str, payment: PaymentIn) -> Sale:
    sale = get_sale_or_404(db, sale_id, lock=True)
    if sale.status in ("cancelled", "refunded"):
        raise ValidationError(f"Cannot record a payment on a {sale.status} sale", field="status")

    record = {
        "amount": round_money(payment.amount, "amount"),
        "date": (as_naive_utc(payment.date) or utcnow()).isoformat(),
        "method": payment.method.value if payment.method else sale.payment_method,
    }
    if payment.reference:
        record["reference"] = payment.reference
    sale.payments = list(sale.payments or []) + [record]

    amount_paid = (sale.payment_status or {}).get("amountPaid", 0) + record["amount"]
    _refresh_payment_status(sale, amount_paid)
    sale.updated_at = utcnow()
    return sale


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------

def get_sale_report(db: Session, start_date: Optional[datetime], end_date: Optional[datetime],
                    status: Optional[str] = None) -> dict:
    params = SalesRequest(start_date=start_date, end_date=end_date, status=status)
    sales = (
        db.query(Sale)
        .filter(*build_sale_filters(params))
        .order_by(Sale.sale_date.desc(), Sale.created_at.desc())
        .all()
    )
    total_revenue = round_money(sum(s.total or 0 for s in sales))
    count = len(sales)
    return {
        "total_sales": count,
        "total_revenue": total_revenue,
        "average_order_value": round_money(total_revenue / count) if count else 0,
        "sales": sales,
    }


def _gross_line_value(line: dict) -> float:
    # before line discounts
    kind = line.get("soldBy") or "quantity"
    return float(line.get("priceAtSale") or 0) * float(line.get(kind) or 0)


def get_sale_trends(db: Session, start_date: Optional[datetime], end_date: Optional[datetime]) -> dict:
    if not start_date or not end_date:
        raise ValidationError("startDate and endDate are required", field="startDate" if not start_date else "endDate")
    if start_date > end_date:
        raise ValidationError("startDate must be before endDate", field="startDate")

    params = SalesRequest(start_date=start_date, end_date=end_date, status="completed")
    sales = db.query(Sale).filter(*build_sale_filters(params)).order_by(Sale.sale_date).all()

    days = OrderedDict()
    for sale in sales:
        day = days.setdefault(sale.sale_date.date().isoformat(),
                              {"count": 0, "total_revenue": 0.0, "breakdown": empty_breakdown()})
        day["count"] += 1
        day["total_revenue"] += sale.total or 0
        add_to_breakdown(day["breakdown"], sale.items or [], "soldBy", _gross_line_value)

    return {
        "start_date": start_date,
        "end_date": end_date,
        "trends": [
            {
                "date": day,
                "count": v["count"],
                "total_revenue": round_money(v["total_revenue"]),
                "measurement_breakdown": rounded_breakdown(v["breakdown"]),
            }
            for day, v in days.items()
        ],
    }
