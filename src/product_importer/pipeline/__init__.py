"""Pipeline modules for validating, enriching and persisting records."""

from . import normalization, rate_limiter, validation

__all__ = ["normalization", "rate_limiter", "validation"]
