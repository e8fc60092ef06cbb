"""Fetcher modules for external data sources."""

from . import enrichment_api

__all__ = ["enrichment_api"]
