"""
Measurement model.

An item counts stock in exactly one dimension (its tracking type). Line items,
components and derivation links carry the measured amount flat on the wire
(`weight`, `weightUnit`, ...); here it is read into a tagged `Measurement`.
No unit conversion is performed anywhere.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from shared.core.errors import MeasurementTypeError, ValidationError

from ..enum.inventory_enum import TrackingType
from .totals import round_money

MEASUREMENT_KINDS = tuple(t.value for t in TrackingType)

# quantity is unitless
UNIT_KEYS = {
    "weight": "weightUnit",
    "length": "lengthUnit",
    "area": "areaUnit",
    "volume": "volumeUnit",
}


@dataclass(frozen=True)
class Measurement:
    kind: str
    value: float
    unit: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: Mapping[str, Any], kind: str) -> "Measurement":
        """Read the `kind` amount of a stored line/component/derivation dict."""
        if kind not in MEASUREMENT_KINDS:
            raise ValidationError(f"Unknown measurement type '{kind}'")
        value = entry.get(kind)
        unit_key = UNIT_KEYS.get(kind)
        return cls(kind=kind, value=float(value or 0), unit=entry.get(unit_key) if unit_key else None)

    def to_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {self.kind: self.value}
        unit_key = UNIT_KEYS.get(self.kind)
        if unit_key and self.unit:
            fields[unit_key] = self.unit
        return fields

    def scaled(self, factor: float) -> "Measurement":
        return Measurement(self.kind, self.value * factor, self.unit)


def present_measurements(entry: Mapping[str, Any]) -> List[Measurement]:
    """All measurements an entry actually carries (non-null, non-zero)."""
    return [
        Measurement.from_entry(entry, kind)
        for kind in MEASUREMENT_KINDS
        if entry.get(kind) not in (None, 0)
    ]


def require_matching(tracking_type: str, measured_by: str, item_name: str, field: str):
    if measured_by != tracking_type:
        raise MeasurementTypeError(
            f"Item '{item_name}' is tracked by {tracking_type} but the line item is measured by {measured_by}",
            details={"trackingType": tracking_type, field: measured_by},
            field=field,
        )


def matching_measurement(entry: Mapping[str, Any], tracking_type: str) -> Measurement:
    """The entry's measurement in the given dimension; it must be present and positive."""
    measurement = Measurement.from_entry(entry, tracking_type)
    if measurement.value <= 0:
        carried = [m.kind for m in present_measurements(entry)]
        raise MeasurementTypeError(
            f"Entry must carry a positive {tracking_type} value",
            details={"expected": tracking_type, "provided": carried},
            field=tracking_type,
        )
    return measurement


def empty_breakdown() -> Dict[str, Dict[str, float]]:
    return {kind: {"count": 0, "total": 0.0} for kind in MEASUREMENT_KINDS}


def add_to_breakdown(breakdown: Dict[str, Dict[str, float]], lines: Iterable[Mapping[str, Any]],
                     measured_by_key: str, line_value: Callable[[Mapping[str, Any]], float]):
    """Count each line under the type it is measured by and add its value."""
    for line in lines:
        kind = line.get(measured_by_key) or TrackingType.quantity.value
        entry = breakdown.setdefault(kind, {"count": 0, "total": 0.0})
        entry["count"] += 1
        entry["total"] += line_value(line)


def rounded_breakdown(breakdown: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, float]]:
    return {kind: {"count": v["count"], "total": round_money(v["total"])} for kind, v in breakdown.items()}
