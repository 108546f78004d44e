from datetime import date, datetime, time, timezone
from typing import Optional, Union

from dateutil import parser as date_parser

from shared.core.errors import ValidationError


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[Union[datetime, date]]) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def end_of_day(value: Optional[Union[datetime, date]]) -> Optional[datetime]:
    """A bare date used as a range end covers the whole day."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, time.max)
    return as_naive_utc(value)


def parse_date_param(value: Optional[str], field: str, end: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date/datetime query value. A bare date used as a range end
    is pushed to the last instant of that day.
    """
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'", field=field)
    if end and "T" not in value and " " not in value:
        return end_of_day(parsed.date())
    return as_naive_utc(parsed)
