"""Storage port and its SQL implementation."""

from . import ports, sql_store

__all__ = ["ports", "sql_store"]
