"""Domain validation for product records."""

import re
from typing import Any, List, Mapping

from .normalization import Missing, as_integer, as_number, as_text, get_field

SKU_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

SKU_EMPTY = "sku must not be empty"
SKU_FORMAT = "sku may only contain letters, digits, '-' and '_'"
NAME_EMPTY = "name must not be empty"
PRICE_REQUIRED = "price is required"
PRICE_INVALID = "price must be a non-negative number"
STOCK_REQUIRED = "stock is required"
STOCK_NOT_INTEGER = "stock must be an integer"
STOCK_NEGATIVE = "stock must not be negative"


def _is_empty(record: Mapping[str, Any], key: str) -> bool:
    field = get_field(record, key)
    if isinstance(field, Missing):
        return True
    text = as_text(field)
    return text is not None and not text.strip()


def validate_product(record: Mapping[str, Any]) -> List[str]:
    """
    Validate a product record against the domain rules.

    Every rule is checked and all violations are returned, in a stable order.

    Args:
        record: Raw or normalized product record

    Returns:
        List of error messages; empty when the record is valid
    """
    errors: List[str] = []

    sku_empty = _is_empty(record, "sku")
    if sku_empty:
        errors.append(SKU_EMPTY)
    else:
        sku = as_text(get_field(record, "sku"))
        if sku is None or not SKU_PATTERN.fullmatch(sku):
            errors.append(SKU_FORMAT)

    if _is_empty(record, "name"):
        errors.append(NAME_EMPTY)

    price = get_field(record, "price")
    if isinstance(price, Missing):
        errors.append(PRICE_REQUIRED)
    else:
        value = as_number(price)
        if value is None or value < 0:
            errors.append(PRICE_INVALID)

    stock = get_field(record, "stock")
    if isinstance(stock, Missing):
        errors.append(STOCK_REQUIRED)
    else:
        count = as_integer(stock)
        if count is None:
            errors.append(STOCK_NOT_INTEGER)
        elif count < 0:
            errors.append(STOCK_NEGATIVE)

    return errors
