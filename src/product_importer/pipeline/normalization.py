"""Classification and normalization of loosely typed input fields.

Input files carry whatever the producer wrote: numbers, numeric strings,
nulls, nested objects. Every raw value is classified into one of four cases
and normalization is defined over those cases only, so nothing is coerced
silently (``"abc"`` never becomes ``0``).
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

_INTEGER_TEXT = re.compile(r"[+-]?\d+")


@dataclass(frozen=True)
class Missing:
    """Field absent or null."""


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Number:
    value: Union[int, float]


@dataclass(frozen=True)
class Other:
    """Anything else: booleans, lists, objects."""
    value: Any


FieldValue = Union[Missing, Text, Number, Other]

MISSING = Missing()


def classify(value: Any) -> FieldValue:
    """Classify a raw value."""
    if value is None:
        return MISSING
    # bool is an int subclass; true/false is never a quantity
    if isinstance(value, bool):
        return Other(value)
    if isinstance(value, (int, float)):
        return Number(value)
    if isinstance(value, str):
        return Text(value)
    return Other(value)


def get_field(record: Mapping[str, Any], key: str) -> FieldValue:
    """Classify ``record[key]``, treating an absent key as missing."""
    if key not in record:
        return MISSING
    return classify(record[key])


def as_number(field: FieldValue) -> Optional[float]:
    """Return the finite numeric value of a field, or None."""
    if isinstance(field, Number):
        number = float(field.value)
    elif isinstance(field, Text):
        try:
            number = float(field.value.strip())
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def as_integer(field: FieldValue) -> Optional[int]:
    """Return the integer value of a field, or None when not integer-representable."""
    if isinstance(field, Number):
        value = field.value
        if isinstance(value, int):
            return value
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(field, Text):
        text = field.value.strip()
        if _INTEGER_TEXT.fullmatch(text):
            return int(text)
    return None


def as_text(field: FieldValue) -> Optional[str]:
    """Return the textual form of a scalar field, or None."""
    if isinstance(field, Text):
        return field.value
    if isinstance(field, Number):
        value = field.value
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    return None


def normalize_record(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Coerce ``stock`` to int and ``price`` to float where that is unambiguous.

    Values that cannot be converted are left untouched so the validator can
    reject them with a precise message. The input mapping is not modified.

    Args:
        raw: Record as loaded from the input set

    Returns:
        A new dictionary with normalized numeric fields
    """
    record = dict(raw)

    stock = as_integer(get_field(raw, "stock"))
    if stock is not None:
        record["stock"] = stock

    price = as_number(get_field(raw, "price"))
    if price is not None:
        record["price"] = price

    return record
