"""Tests for RateLimitedClient retry, error mapping and permit accounting.

All HTTP traffic goes through httpx.MockTransport; no real network calls.
"""

import httpx
import pytest

from panelmarket.clients.base import RateLimitedClient
from panelmarket.exceptions import ExternalApiError, RateLimitExceeded, ResourceNotFound
from panelmarket.ratelimit import RateLimiter


class ExampleClient(RateLimitedClient):
    service = "example"


def _client(
    handler, limiter: RateLimiter | None = None, capacity: int = 100, **kwargs
) -> ExampleClient:
    return ExampleClient(
        limiter or RateLimiter(),
        base_url="https://api.example.test",
        capacity=capacity,
        window_ms=60_000,
        retry_base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestRequest:
    @pytest.mark.asyncio
    async def test_returns_json_body(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"ok": True}))
        try:
            assert await client._request("/thing") == {"ok": True}
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_default_headers_and_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        client = _client(
            handler, headers={"X-Test": "1"}, params={"api_key": "k"}
        )
        try:
            await client._request("/thing", params={"q": "spider"})
        finally:
            await client.close()

        request = seen[0]
        assert request.url.path == "/thing"
        assert request.url.params["api_key"] == "k"
        assert request.url.params["q"] == "spider"
        assert request.headers["X-Test"] == "1"
        assert request.headers["Accept"] == "application/json"

    def test_registers_limiter(self) -> None:
        limiter = RateLimiter()
        _client(lambda r: httpx.Response(200), limiter=limiter, capacity=7)
        assert limiter.status("example").capacity == 7


class TestRetries:
    @pytest.mark.asyncio
    async def test_server_errors_retried(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json=[1])])
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return next(responses)

        client = _client(handler, max_retries=3)
        try:
            assert await client._request("/thing") == [1]
        finally:
            await client.close()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_server_error_after_retries(self) -> None:
        client = _client(lambda request: httpx.Response(500), max_retries=2)
        try:
            with pytest.raises(ExternalApiError) as exc_info:
                await client._request("/thing")
        finally:
            await client.close()
        assert exc_info.value.status_code == 500
        assert exc_info.value.service == "example"

    @pytest.mark.asyncio
    async def test_network_error_after_retries(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler, max_retries=3)
        try:
            with pytest.raises(ExternalApiError, match="Network error"):
                await client._request("/thing")
        finally:
            await client.close()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_each_attempt_takes_a_permit(self) -> None:
        limiter = RateLimiter()
        responses = iter([httpx.Response(503), httpx.Response(200, json={})])
        client = _client(lambda request: next(responses), limiter=limiter, capacity=2)
        try:
            await client._request("/thing")
        finally:
            await client.close()
        assert limiter.status("example").remaining == 0


class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 429])
    async def test_client_errors_not_retried(self, status: int) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(status)

        client = _client(handler, max_retries=3)
        try:
            with pytest.raises(ExternalApiError) as exc_info:
                await client._request("/thing")
        finally:
            await client.close()
        assert exc_info.value.status_code == status
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_404_is_resource_not_found(self) -> None:
        client = _client(lambda request: httpx.Response(404))
        try:
            with pytest.raises(ResourceNotFound):
                await client._request("/missing")
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        client = _client(lambda request: httpx.Response(200, content=b"<html>"))
        try:
            with pytest.raises(ExternalApiError, match="Invalid JSON"):
                await client._request("/thing")
        finally:
            await client.close()


class TestLimitPolicy:
    @pytest.mark.asyncio
    async def test_fail_policy_raises_without_request(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={})

        client = _client(handler, capacity=1, on_limit="fail")
        try:
            await client._request("/thing")
            with pytest.raises(RateLimitExceeded):
                await client._request("/thing")
        finally:
            await client.close()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_wait_policy_waits_for_window(self) -> None:
        limiter = RateLimiter()
        client = ExampleClient(
            limiter,
            base_url="https://api.example.test",
            capacity=1,
            window_ms=30,
            on_limit="wait",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
        )
        try:
            await client._request("/a")
            await client._request("/b")
        finally:
            await client.close()
