import re
from typing import Iterable, Optional

NUMERIC_PATTERN = re.compile(r"^\d+$")

SKU_WIDTH = 10


def next_in_sequence(values: Iterable[Optional[str]], width: int) -> str:
    """Smallest zero-padded number strictly above the largest purely numeric value."""
    highest = 0
    for value in values:
        if value and NUMERIC_PATTERN.match(value):
            highest = max(highest, int(value))
    return str(highest + 1).zfill(width)


def next_sku(skus: Iterable[Optional[str]]) -> str:
    return next_in_sequence(skus, SKU_WIDTH)


def next_invoice_number(invoice_numbers: Iterable[Optional[str]], width: int = 6) -> str:
    return next_in_sequence(invoice_numbers, width)
