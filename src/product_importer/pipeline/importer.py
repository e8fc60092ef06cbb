"""Main import pipeline orchestrator."""

import asyncio
import signal
import time
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, List, Optional

from ..config import settings
from ..errors import InputError, PersistError
from ..fetchers.enrichment_api import EnrichmentClient, Enricher
from ..logging_config import get_logger
from ..progress import ProgressSink
from ..storage.ports import StoragePort
from ..utils.typing import FailureReason
from .normalization import normalize_record
from .rate_limiter import Clock, RateLimiter
from .validation import validate_product

logger = get_logger(__name__)


class RecordState(str, Enum):
    """Terminal state of a single record."""

    PERSISTED = "persisted"
    INVALID = "invalid"
    API_FAILED = "api_failed"
    PERSIST_FAILED = "persist_failed"


@dataclass
class ImportTally:
    """Running counters for one import run."""

    total: int = 0
    done: int = 0
    succeeded: int = 0
    invalid: int = 0
    api_failed: int = 0
    persist_failed: int = 0

    def record(self, state: RecordState) -> None:
        self.done += 1
        if state is RecordState.PERSISTED:
            self.succeeded += 1
        elif state is RecordState.INVALID:
            self.invalid += 1
        elif state is RecordState.API_FAILED:
            self.api_failed += 1
        else:
            self.persist_failed += 1


@dataclass(frozen=True)
class RecordResult:
    """Outcome of processing one input record."""

    index: int
    sku: Any
    state: RecordState
    reason: Optional[FailureReason] = None


@dataclass(frozen=True)
class RunSummary:
    """Final statistics of an import run."""

    total: int
    succeeded: int
    invalid: int
    api_failed: int
    persist_failed: int
    elapsed_seconds: int
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.invalid + self.api_failed + self.persist_failed


def ensure_record_sequence(records: Any) -> Sequence[Mapping[str, Any]]:
    """Fail fast unless ``records`` is a sequence of mappings."""
    if isinstance(records, (str, bytes)) or not isinstance(records, Sequence):
        raise InputError(f"Input must be a sequence of records, got {type(records).__name__}")

    for i, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise InputError(f"Record {i} is not an object: {type(record).__name__}")

    return records


class ImportPipeline:
    """Drive every record to exactly one terminal state.

    Per record: normalize, validate, enrich (when an enricher is configured),
    then upsert. Validation, API and store failures are written to the
    store's failure table and never stop the run.
    """

    def __init__(
        self,
        store: StoragePort,
        enricher: Optional[Enricher] = None,
        progress: Optional[ProgressSink] = None,
        concurrency: int = 1,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.enricher = enricher
        self.progress = progress
        self.concurrency = max(1, concurrency)

        # More records in flight than tokens in the bucket only queues on the limiter
        limiter = getattr(enricher, "rate_limiter", None)
        if isinstance(limiter, RateLimiter):
            self.concurrency = min(self.concurrency, limiter.capacity)

        self._clock = clock or time.monotonic
        self._started_at = 0.0
        self._cancelled = False
        self.tally = ImportTally()
        self.results: List[RecordResult] = []

    def cancel(self) -> None:
        """Stop before the next record; records already started still finish."""
        if not self._cancelled:
            logger.warning("Stop requested, finishing records in flight")
        self._cancelled = True

    async def run(self, records: Sequence[Mapping[str, Any]]) -> RunSummary:
        """
        Import a batch of records.

        Args:
            records: Pre-parsed input records, processed in order

        Returns:
            Summary of the run

        Raises:
            InputError: If ``records`` is not a sequence of mappings
        """
        records = ensure_record_sequence(records)

        self.tally = ImportTally(total=len(records))
        self.results = []
        self._started_at = self._clock()

        logger.info(f"Starting import of {len(records)} records (concurrency {self.concurrency})")
        if self.enricher is None:
            logger.info("Enrichment not configured, records are stored without metadata")

        # Results are consumed strictly in input order, whatever order they finish in
        pending: Deque[asyncio.Task] = deque()
        try:
            for index, raw in enumerate(records):
                if self._cancelled:
                    break
                pending.append(asyncio.ensure_future(self.process_record(index, raw)))
                if len(pending) >= self.concurrency:
                    self._finish(await pending.popleft())

            while pending:
                self._finish(await pending.popleft())
        finally:
            for task in pending:
                task.cancel()

        elapsed = self._elapsed()
        self._emit_progress()

        summary = RunSummary(
            total=self.tally.total,
            succeeded=self.tally.succeeded,
            invalid=self.tally.invalid,
            api_failed=self.tally.api_failed,
            persist_failed=self.tally.persist_failed,
            elapsed_seconds=elapsed,
            cancelled=self._cancelled,
        )
        logger.info(
            f"Import complete. Total: {summary.total}, Succeeded: {summary.succeeded}, "
            f"Invalid: {summary.invalid}, API failed: {summary.api_failed}, "
            f"DB failed: {summary.persist_failed}, Elapsed: {elapsed}s"
        )
        return summary

    async def process_record(self, index: int, raw: Mapping[str, Any]) -> RecordResult:
        """Process a single record and return its terminal state."""
        record = normalize_record(raw)
        sku = record.get("sku")

        errors = validate_product(record)
        if errors:
            logger.debug(f"Record {index} ({sku}) is invalid: {errors}")
            self._record_failure(raw, errors)
            return RecordResult(index, sku, RecordState.INVALID, errors)

        metadata: dict = {}
        if self.enricher is None:
            logger.debug(f"Skipping enrichment for {sku}")
        else:
            outcome = await self.enricher.enrich(record)
            if not outcome.ok:
                reason = {"api_error": outcome.error or "unknown error"}
                self._record_failure(raw, reason)
                return RecordResult(index, sku, RecordState.API_FAILED, reason)

            metadata = outcome.data or {}
            if not metadata:
                logger.debug(f"Enrichment returned an empty payload for {sku}")

        try:
            self.store.upsert_valid(record, metadata)
        except PersistError as e:
            logger.warning(f"Failed to store {sku}: {e}")
            reason = {"db_error": str(e)}
            self._record_failure(raw, reason)
            return RecordResult(index, sku, RecordState.PERSIST_FAILED, reason)

        return RecordResult(index, sku, RecordState.PERSISTED)

    def _record_failure(self, raw: Mapping[str, Any], reason: FailureReason) -> None:
        try:
            self.store.record_failure(raw, reason)
        except PersistError as e:
            logger.error(f"Could not record failure {reason!r}: {e}")

    def _finish(self, result: RecordResult) -> None:
        self.tally.record(result.state)
        self.results.append(result)
        self._emit_progress()

    def _elapsed(self) -> int:
        return int(self._clock() - self._started_at)

    def _emit_progress(self) -> None:
        if self.progress is not None:
            self.progress.on_progress(self.tally.done, self.tally.total, self._elapsed())


async def run_import(
    records: Sequence[Mapping[str, Any]],
    store: StoragePort,
    progress: Optional[ProgressSink] = None,
    enrichment_url: Optional[str] = None,
    rate_limit: Optional[int] = None,
    rate_window: Optional[float] = None,
    max_retries: Optional[int] = None,
    concurrency: Optional[int] = None,
    handle_interrupt: bool = False,
) -> RunSummary:
    """
    Build the pipeline from settings and import ``records``.

    Unset arguments fall back to ``settings``. With ``handle_interrupt`` a
    SIGINT stops the run at the next record boundary instead of aborting it.
    """
    records = ensure_record_sequence(records)
    enrichment_url = enrichment_url or settings.enrichment_url
    concurrency = concurrency or settings.concurrency

    if not enrichment_url:
        pipeline = ImportPipeline(store, None, progress, concurrency)
        return await _run_with_interrupt(pipeline, records, handle_interrupt)

    rate_limiter = RateLimiter(
        capacity=rate_limit or settings.max_api_requests_per_minute,
        window_seconds=rate_window or settings.rate_window_seconds,
        poll_interval=settings.poll_interval,
    )
    async with EnrichmentClient(enrichment_url, rate_limiter, max_retries=max_retries) as client:
        pipeline = ImportPipeline(store, client, progress, concurrency)
        return await _run_with_interrupt(pipeline, records, handle_interrupt)


async def _run_with_interrupt(
    pipeline: ImportPipeline,
    records: Sequence[Mapping[str, Any]],
    handle_interrupt: bool,
) -> RunSummary:
    if not handle_interrupt:
        return await pipeline.run(records)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform/thread; Ctrl-C aborts as usual
        return await pipeline.run(records)

    try:
        return await pipeline.run(records)
    finally:
        loop.remove_signal_handler(signal.SIGINT)
