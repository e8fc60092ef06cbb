"""Exception hierarchy for the product importer.

Fatal errors (``InputError``, ``StoreConnectionError``) abort a run before any
record is touched. ``PersistError`` is per-record and is routed to the failure
table by the pipeline.
"""

from __future__ import annotations


class ImporterError(Exception):
    """Base exception for all importer failures."""


class ConfigurationError(ImporterError):
    """Raised for invalid runtime configuration."""


class InputError(ImporterError):
    """Raised when the input set is unreadable or not a sequence of mappings."""


class StoreConnectionError(ImporterError):
    """Raised when the product store cannot be reached."""


class PersistError(ImporterError):
    """Raised when a single store write fails."""
