from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from shared.core.errors import ValidationError

DAYS_PER_YEAR = 365.25

FREQUENCY_STEPS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(days=7),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "yearly": relativedelta(years=1),
}


def next_maintenance_date(performed_on: datetime, frequency: Optional[str]) -> Optional[datetime]:
    """Calendar step from the maintenance date (Jan 31 + 1 month -> Feb 28/29)."""
    if not frequency:
        return None
    step = FREQUENCY_STEPS.get(frequency)
    if step is None:
        raise ValidationError(f"Unknown maintenance frequency '{frequency}'", field="frequency")
    return performed_on + step


def straight_line_value(initial_cost: float, salvage_value: float, years: float,
                        purchased_on: datetime, as_of: datetime) -> float:
    if years <= 0:
        raise ValidationError("Depreciation lifetime must be greater than zero", field="years")
    if salvage_value > initial_cost:
        raise ValidationError("Salvage value cannot exceed the initial cost", field="salvageValue")

    elapsed_years = max(0.0, (as_of - purchased_on).total_seconds() / 86400 / DAYS_PER_YEAR)
    annual = (initial_cost - salvage_value) / years
    return max(salvage_value, initial_cost - annual * elapsed_years)
