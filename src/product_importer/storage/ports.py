"""Persistence port consumed by the import pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from product_importer.utils.typing import FailureReason


@runtime_checkable
class StoragePort(Protocol):
    """Durable store for import outcomes.

    Each call is atomic on its own: it either fully applies or raises
    ``PersistError`` and leaves the store unchanged.
    """

    def upsert_valid(self, record: Mapping[str, Any], metadata: Mapping[str, Any]) -> None:
        """Insert or update a product keyed by ``sku``."""
        ...

    def record_failure(self, raw_record: Mapping[str, Any], reason: FailureReason) -> None:
        """Append a rejected record together with the reason it was rejected."""
        ...
