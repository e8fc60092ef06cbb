"""Product enrichment API client with rate limiting and retries."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol
import httpx
from ..config import settings
from ..logging_config import get_logger
from ..pipeline.rate_limiter import RateLimiter, Sleeper

logger = get_logger(__name__)

INVALID_RESPONSE_FORMAT = "invalid response format"


@dataclass(frozen=True)
class EnrichmentOutcome:
    """Result of one logical enrichment call."""

    ok: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int = 0

    @classmethod
    def success(cls, data: Dict[str, Any], attempts: int) -> "EnrichmentOutcome":
        return cls(ok=True, data=data, attempts=attempts)

    @classmethod
    def failure(cls, error: str, attempts: int) -> "EnrichmentOutcome":
        return cls(ok=False, error=error, attempts=attempts)


class Enricher(Protocol):
    """Anything that can enrich a validated record."""

    async def enrich(self, record: Mapping[str, Any]) -> EnrichmentOutcome: ...


class _RetryableAttempt(Exception):
    """Internal signal carrying the pending error of a failed attempt."""


class EnrichmentClient:
    """Async client for the product enrichment endpoint."""

    def __init__(
        self,
        base_url: str,
        rate_limiter: RateLimiter,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Sleeper] = None,
    ):
        """
        Initialize enrichment client.

        Args:
            base_url: Enrichment endpoint, queried as ``GET base_url?sku=...``
            rate_limiter: Limiter consulted before every attempt
            max_retries: Total attempts per call (defaults to settings)
            backoff_base: Delay before the second attempt, doubled each time
            client: Optional preconfigured HTTP client (not closed by us)
            sleep: Async sleep used for backoff (defaults to asyncio.sleep)
        """
        self.base_url = base_url
        self.rate_limiter = rate_limiter
        self.max_retries = max(1, max_retries if max_retries is not None else settings.max_retries)
        self.backoff_base = backoff_base if backoff_base is not None else settings.backoff_base
        self._sleep = sleep or asyncio.sleep
        self._owns_client = client is None
        self.http_client: Optional[httpx.AsyncClient] = client

    async def __aenter__(self):
        """Async context manager entry."""
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.http_timeout, connect=settings.connect_timeout),
                headers=settings.enrichment_headers,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20
                ),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.http_client and self._owns_client:
            await self.http_client.aclose()
            self.http_client = None

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after a failed ``attempt`` (1-based)."""
        return self.backoff_base * (2 ** (attempt - 1))

    async def enrich(self, record: Mapping[str, Any]) -> EnrichmentOutcome:
        """
        Enrich a single product record.

        Args:
            record: Validated product record; only ``sku`` is sent

        Returns:
            Successful outcome with the decoded payload, or a failure carrying
            the error of the last attempt
        """
        if self.http_client is None:
            raise RuntimeError("EnrichmentClient must be used as an async context manager")

        sku = str(record.get("sku", ""))
        pending_error = "unknown error"

        for attempt in range(1, self.max_retries + 1):
            await self.rate_limiter.wait_for_token()

            try:
                data = await self._attempt(sku)
                logger.debug(f"Enriched {sku} on attempt {attempt}")
                return EnrichmentOutcome.success(data, attempts=attempt)
            except _RetryableAttempt as e:
                pending_error = str(e)

            logger.warning(
                f"Enrichment attempt {attempt}/{self.max_retries} for {sku} failed: {pending_error}"
            )

            if attempt < self.max_retries:
                await self._sleep(self.backoff_delay(attempt))

        return EnrichmentOutcome.failure(pending_error, attempts=self.max_retries)

    async def _attempt(self, sku: str) -> Dict[str, Any]:
        """Issue one request and classify the response."""
        try:
            response = await self.http_client.get(self.base_url, params={"sku": sku})
        except httpx.DecodingError as e:
            # Body is read eagerly, so a corrupt Content-Encoding fails here
            raise _RetryableAttempt(INVALID_RESPONSE_FORMAT) from e
        except httpx.RequestError as e:
            raise _RetryableAttempt(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise _RetryableAttempt(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise _RetryableAttempt(INVALID_RESPONSE_FORMAT) from e

        if not isinstance(data, dict):
            raise _RetryableAttempt(INVALID_RESPONSE_FORMAT)

        return data
