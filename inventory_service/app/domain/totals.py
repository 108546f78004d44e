import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List

from inventory_service.app.enum.inventory_enum import PaymentStatus
from shared.core.errors import ValidationError

CENT = Decimal("0.01")


def round_money(value: float, field: str = None) -> float:
    if value is None:
        return 0.0
    if not math.isfinite(value):
        raise ValidationError("Monetary amount cannot be rounded to two decimals", field=field)
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def normalize_line(line: Dict[str, Any], measured_by_key: str, unit_price_key: str, total_key: str) -> Dict[str, Any]:
    """
    Fill in a line's discount pair and total.

    A positive percentage wins over an absolute amount; an absolute amount
    back-fills the percentage (0 when the base is 0). The line total never
    goes below zero.
    """
    kind = line[measured_by_key]
    base_amount = float(line.get(kind) or 0) * float(line.get(unit_price_key) or 0)
    percentage = float(line.get("discountPercentage") or 0)
    amount = float(line.get("discountAmount") or 0)

    if percentage > 0:
        amount = base_amount * percentage / 100
    elif amount > 0:
        percentage = 100 * amount / base_amount if base_amount else 0

    normalized = dict(line)
    normalized["discountAmount"] = round_money(amount, "discountAmount")
    normalized["discountPercentage"] = round_money(percentage, "discountPercentage")
    normalized[total_key] = round_money(max(0.0, base_amount - amount), total_key)
    return normalized


def compute_totals(lines: List[Dict[str, Any]], total_key: str, discount_amount: float = 0,
                   tax_rate: float = 0, shipping_cost: float = 0) -> Dict[str, float]:
    subtotal = round_money(sum(line.get(total_key) or 0 for line in lines), "subtotal")
    tax_amount = round_money(subtotal * (tax_rate or 0) / 100, "taxAmount")
    total = round_money(subtotal - (discount_amount or 0) + tax_amount + (shipping_cost or 0), "total")
    return {
        "subtotal": subtotal,
        "discount_amount": round_money(discount_amount or 0, "discountAmount"),
        "tax_amount": tax_amount,
        "shipping_cost": round_money(shipping_cost or 0, "shippingCost"),
        "total": total,
    }


def payment_status(amount_paid: float, total: float) -> str:
    if amount_paid <= 0:
        return PaymentStatus.unpaid.value
    if amount_paid + 0.005 >= total:
        return PaymentStatus.paid.value
    return PaymentStatus.partial.value
