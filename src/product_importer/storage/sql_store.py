"""SQLAlchemy implementation of the storage port."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..errors import PersistError, StoreConnectionError
from ..logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.engine import Engine

    from ..utils.typing import FailureReason, ProductRow

logger = get_logger(__name__)


metadata_obj = MetaData()

products_table = Table(
    "products",
    metadata_obj,
    Column("sku", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("price", Float, nullable=False),
    Column("stock", Integer, nullable=False),
    Column("metadata", JSON, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

invalid_products_table = Table(
    "invalid_products",
    metadata_obj,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("raw_data", Text, nullable=False),
    Column("errors", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


# Driver-side conversion failures (e.g. an int too large for SQLite INTEGER)
# surface unwrapped, outside SQLAlchemy's exception hierarchy
WRITE_ERRORS = (SQLAlchemyError, OverflowError, TypeError, ValueError)


def _describe(error: Exception) -> str:
    # DBAPI errors wrap the driver exception, whose text is the useful part
    original = getattr(error, "orig", None)
    return str(original) if original is not None else str(error)


class SqlProductStore:
    """Product store backed by any SQLAlchemy-supported database."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        self.database_url = database_url or settings.database_url
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreConnectionError("Store is not connected; call connect() first")
        return self._engine

    def connect(self) -> SqlProductStore:
        """Open the engine, create missing tables and verify the connection."""
        try:
            if self._engine is None:
                self._engine = create_engine(self.database_url, future=True)
            metadata_obj.create_all(self._engine)
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, ImportError) as e:
            self._engine = None
            raise StoreConnectionError(f"Cannot connect to store: {e}") from e

        logger.debug(f"Connected to store {self.engine.url.render_as_string(hide_password=True)}")
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def upsert_valid(self, record: Mapping[str, Any], metadata: Mapping[str, Any]) -> None:
        """Insert or update a product in its own transaction."""
        values = {
            "name": record["name"],
            "description": record.get("description"),
            "price": record["price"],
            "stock": record["stock"],
            "metadata": dict(metadata),
            "updated_at": datetime.now(timezone.utc),
        }
        sku = record["sku"]
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(products_table).where(products_table.c.sku == sku).values(**values)
                )
                if result.rowcount == 0:
                    conn.execute(insert(products_table).values(sku=sku, **values))
        except WRITE_ERRORS as e:
            raise PersistError(_describe(e)) from e

    def record_failure(self, raw_record: Mapping[str, Any], reason: FailureReason) -> None:
        """Store a rejected record and its reason as JSON text."""
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(invalid_products_table).values(
                        raw_data=_to_json(dict(raw_record)),
                        errors=_to_json(reason),
                    )
                )
        except WRITE_ERRORS as e:
            raise PersistError(_describe(e)) from e

    def get_product(self, sku: str) -> Optional[ProductRow]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(products_table).where(products_table.c.sku == sku)
            ).mappings().first()
        if row is None:
            return None
        return {
            "sku": row["sku"],
            "name": row["name"],
            "description": row["description"],
            "price": row["price"],
            "stock": row["stock"],
            "metadata": row["metadata"],
        }

    def count_products(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(products_table)).scalar_one()

    def list_failures(self, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent failure records, newest first, with JSON columns decoded."""
        query = (
            select(invalid_products_table)
            .order_by(invalid_products_table.c.id.desc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [
            {
                "id": row["id"],
                "raw_data": json.loads(row["raw_data"]),
                "errors": json.loads(row["errors"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]
