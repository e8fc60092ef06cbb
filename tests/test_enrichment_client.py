"""Tests for the retrying enrichment client."""

import httpx
import pytest
from conftest import CountingLimiter, FakeClock, make_http_client
from product_importer.fetchers.enrichment_api import (
    INVALID_RESPONSE_FORMAT,
    EnrichmentClient,
)
from product_importer.pipeline.rate_limiter import RateLimiter

ENDPOINT = "https://enrich.example.com/products"


class ScriptedHandler:
    """Serve a fixed sequence of responses, repeating the last one."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        # Fresh response per request; httpx binds streams to a single request
        return httpx.Response(
            response.status_code, content=response.content, headers=response.headers
        )


def make_client(handler, clock: FakeClock, limiter=None, **kwargs) -> EnrichmentClient:
    return EnrichmentClient(
        ENDPOINT,
        limiter or CountingLimiter(),
        client=make_http_client(handler),
        sleep=clock.sleep,
        **kwargs,
    )


class TestEnrichmentClient:
    """Test retry classification and backoff."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, clock):
        handler = ScriptedHandler(httpx.Response(200, json={"category": "tools"}))
        limiter = CountingLimiter()

        async with make_client(handler, clock, limiter, max_retries=3) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert outcome.ok
        assert outcome.data == {"category": "tools"}
        assert outcome.attempts == 1
        assert clock.sleeps == []
        assert limiter.calls == 1
        assert handler.requests[0].url.params["sku"] == "AB-1"

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, clock):
        """k failures then success: k+1 attempts, sleeps 1s, 2s, ..."""
        handler = ScriptedHandler(
            httpx.Response(503),
            httpx.Response(502),
            httpx.Response(200, json={"weight": 1.5}),
        )
        limiter = CountingLimiter()

        async with make_client(handler, clock, limiter, max_retries=4, backoff_base=1.0) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert outcome.ok
        assert outcome.data == {"weight": 1.5}
        assert outcome.attempts == 3
        assert len(handler.requests) == 3
        assert clock.sleeps == [1.0, 2.0]
        assert limiter.calls == 3

    @pytest.mark.asyncio
    async def test_always_failing_call_exhausts_retries(self, clock):
        handler = ScriptedHandler(httpx.Response(500))
        limiter = CountingLimiter()

        async with make_client(handler, clock, limiter, max_retries=3, backoff_base=1.0) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert not outcome.ok
        assert outcome.error == "HTTP 500"
        assert outcome.attempts == 3
        assert len(handler.requests) == 3
        # No sleep after the final attempt
        assert clock.sleeps == [1.0, 2.0]
        assert limiter.calls == 3

    @pytest.mark.asyncio
    async def test_reports_last_error(self, clock):
        handler = ScriptedHandler(httpx.Response(500), httpx.Response(404))

        async with make_client(handler, clock, max_retries=2) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert outcome.error == "HTTP 404"

    @pytest.mark.asyncio
    async def test_malformed_body_is_retried(self, clock):
        handler = ScriptedHandler(
            httpx.Response(200, content=b"<html>oops</html>"),
            httpx.Response(200, json={"ok": True}),
        )

        async with make_client(handler, clock, max_retries=3) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert outcome.ok
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, content=b"{not json"),
            httpx.Response(200, json=[1, 2, 3]),
            httpx.Response(200, json="just a string"),
        ],
    )
    async def test_non_object_body_is_invalid_format(self, clock, response):
        handler = ScriptedHandler(response)

        async with make_client(handler, clock, max_retries=2) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert not outcome.ok
        assert outcome.error == INVALID_RESPONSE_FORMAT

    @pytest.mark.asyncio
    async def test_corrupt_content_encoding_is_invalid_format(self, clock):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip"),
            )

        async with make_client(handler, clock, max_retries=3) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert not outcome.ok
        assert outcome.error == INVALID_RESPONSE_FORMAT
        assert outcome.attempts == 3
        assert len(requests) == 3
        assert clock.sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_request_errors_outside_transport_are_retried(self, clock):
        request = httpx.Request("GET", ENDPOINT)
        handler = ScriptedHandler(
            httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request),
            httpx.Response(200, json={"ok": True}),
        )

        async with make_client(handler, clock, max_retries=2) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert outcome.ok
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, clock):
        request = httpx.Request("GET", ENDPOINT)
        handler = ScriptedHandler(
            httpx.ConnectError("connection refused", request=request),
            httpx.ReadTimeout("timed out", request=request),
        )

        async with make_client(handler, clock, max_retries=2) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert not outcome.ok
        assert outcome.error == "timed out"
        assert outcome.attempts == 2
        assert clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_custom_backoff_base(self, clock):
        handler = ScriptedHandler(httpx.Response(503))

        async with make_client(handler, clock, max_retries=4, backoff_base=0.5) as client:
            await client.enrich({"sku": "AB-1"})

        assert clock.sleeps == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_rate_limiter_gates_every_attempt(self, clock):
        """Retries consume tokens too, so they wait for the bucket to refill."""
        handler = ScriptedHandler(httpx.Response(503))
        limiter = RateLimiter(1, 10.0, poll_interval=0.25, clock=clock, sleep=clock.sleep)
        start = clock.now

        async with make_client(handler, clock, limiter, max_retries=2, backoff_base=1.0) as client:
            outcome = await client.enrich({"sku": "AB-1"})

        assert not outcome.ok
        # 1s backoff, then the second attempt waits for the 10s refill
        assert clock.now - start >= 10.0
        assert limiter.tokens == 0

    @pytest.mark.asyncio
    async def test_requires_http_client(self):
        client = EnrichmentClient(ENDPOINT, CountingLimiter())

        with pytest.raises(RuntimeError):
            await client.enrich({"sku": "AB-1"})

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        client = EnrichmentClient(ENDPOINT, CountingLimiter())

        async with client:
            assert client.http_client is not None
            assert client.http_client.timeout.connect == 5.0

        assert client.http_client is None

    def test_backoff_delay(self):
        client = EnrichmentClient(ENDPOINT, CountingLimiter(), backoff_base=1.0)

        assert [client.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
