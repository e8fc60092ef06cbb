"""Type definitions for the application."""

from typing import TypedDict, Optional, Dict, Any, List, Union


class ProductRow(TypedDict):
    """Row written to the products table."""
    sku: str
    name: str
    description: Optional[str]
    price: float
    stock: int
    metadata: Dict[str, Any]


# Validation errors are stored as a list; API and DB errors as a keyed message
FailureReason = Union[List[str], Dict[str, str]]
