"""Shared fixtures and fakes for the test suite."""

from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import pytest

from product_importer.errors import PersistError
from product_importer.fetchers.enrichment_api import EnrichmentOutcome


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class CountingLimiter:
    """Stand-in limiter that admits immediately and counts admissions."""

    def __init__(self):
        self.calls = 0

    async def wait_for_token(self) -> None:
        self.calls += 1


class RecordingStore:
    """In-memory storage port that records every call."""

    def __init__(self, fail_upsert_skus=(), fail_failures: bool = False):
        self.fail_upsert_skus = set(fail_upsert_skus)
        self.fail_failures = fail_failures
        self.upserts: List[Tuple[Dict[str, Any], Dict[str, Any]]] = []
        self.failures: List[Tuple[Dict[str, Any], Any]] = []

    def upsert_valid(self, record: Mapping[str, Any], metadata: Mapping[str, Any]) -> None:
        if record["sku"] in self.fail_upsert_skus:
            raise PersistError(f"duplicate entry for {record['sku']}")
        self.upserts.append((dict(record), dict(metadata)))

    def record_failure(self, raw_record: Mapping[str, Any], reason: Any) -> None:
        if self.fail_failures:
            raise PersistError("disk full")
        self.failures.append((dict(raw_record), reason))


class ScriptedEnricher:
    """Enricher returning a fixed outcome per SKU."""

    def __init__(
        self,
        outcomes: Optional[Dict[str, EnrichmentOutcome]] = None,
        default: Optional[EnrichmentOutcome] = None,
    ):
        self.outcomes = outcomes or {}
        self.default = default or EnrichmentOutcome.success({"source": "test"}, attempts=1)
        self.calls: List[str] = []

    async def enrich(self, record: Mapping[str, Any]) -> EnrichmentOutcome:
        self.calls.append(record["sku"])
        return self.outcomes.get(record["sku"], self.default)


class ProgressRecorder:
    def __init__(self):
        self.events: List[Tuple[int, int, int]] = []

    def on_progress(self, done: int, total: int, elapsed_seconds: int) -> None:
        self.events.append((done, total, elapsed_seconds))


def make_http_client(handler) -> httpx.AsyncClient:
    """HTTP client whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def product(sku: Any = "SKU-1", **overrides: Any) -> Dict[str, Any]:
    record = {"sku": sku, "name": "Widget", "price": 9.99, "stock": 5}
    record.update(overrides)
    return record


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def progress() -> ProgressRecorder:
    return ProgressRecorder()
