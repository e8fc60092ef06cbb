"""Product Importer - Validate, enrich and persist product batches."""

__version__ = "0.1.0"

from .config import Settings

__all__ = ["Settings"]
