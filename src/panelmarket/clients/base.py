"""Shared HTTP client for paid external APIs guarded by the rate limiter.

Every request takes a permit from the client's limiter key before it goes
out, including retries, since upstream quotas count every attempt.

Two limit policies, chosen per client:
- "fail": RateLimitExceeded propagates to the caller immediately.
- "wait": the request sleeps until the window resets (short windows only).
"""

import asyncio
from typing import Any, Literal

import httpx

from panelmarket.exceptions import ExternalApiError, ResourceNotFound
from panelmarket.logging import get_logger
from panelmarket.ratelimit import RateLimiter

logger = get_logger(__name__)

LimitPolicy = Literal["fail", "wait"]


class RateLimitedClient:
    """Base class for rate-limited JSON API clients.

    Subclasses set ``service`` and call ``_request`` with a path relative to
    ``base_url``.
    """

    service: str = "external"

    def __init__(
        self,
        limiter: RateLimiter,
        *,
        base_url: str,
        capacity: int,
        window_ms: int,
        on_limit: LimitPolicy = "fail",
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._limiter = limiter
        self._on_limit = on_limit
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = retry_base_delay

        limiter.create_limiter(self.service, capacity, window_ms)

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
            headers={"Accept": "application/json", **(headers or {})},
            params=params,
            transport=transport,
        )

    async def close(self) -> None:
        """Release the underlying connection pool."""
        await self._client.aclose()

    async def _take_permit(self) -> None:
        if self._on_limit == "wait":
            await self._limiter.acquire(self.service)
        else:
            self._limiter.consume(self.service)

    async def _request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET ``path`` and return the decoded JSON body.

        Retries transport errors and 5xx responses with exponential backoff
        (base, 2x base, 4x base, ...). Raises ResourceNotFound on 404 and
        ExternalApiError on any other failure.
        """
        for attempt in range(self._max_retries):
            await self._take_permit()
            is_last = attempt == self._max_retries - 1

            try:
                response = await self._client.get(path, params=params, headers=headers)
            except httpx.TransportError as e:
                if is_last:
                    logger.error(
                        "api_request_failed_permanently",
                        service=self.service,
                        path=path,
                        error=str(e),
                        attempts=self._max_retries,
                    )
                    raise ExternalApiError(self.service, f"Network error: {e}") from e
                await self._backoff(attempt, path, error=str(e))
                continue

            if response.status_code >= 500:
                if is_last:
                    raise ExternalApiError(
                        self.service,
                        f"Server error {response.status_code}",
                        status_code=response.status_code,
                    )
                await self._backoff(attempt, path, status=response.status_code)
                continue

            return self._decode(response, path)

        raise ExternalApiError(self.service, "Retries exhausted")  # Unreachable

    def _decode(self, response: httpx.Response, path: str) -> Any:
        status = response.status_code
        if status == 404:
            raise ResourceNotFound(self.service, f"Not found: {path}", status_code=404)
        if status == 401:
            raise ExternalApiError(self.service, "Invalid API key", status_code=401)
        if status == 403:
            raise ExternalApiError(self.service, "Access forbidden", status_code=403)
        if status == 429:
            raise ExternalApiError(
                self.service, "Upstream rate limit exceeded", status_code=429
            )
        if status >= 400:
            raise ExternalApiError(
                self.service,
                f"Request failed: {response.reason_phrase}",
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ExternalApiError(
                self.service, "Invalid JSON in response", status_code=status
            ) from e

    async def _backoff(self, attempt: int, path: str, **context: Any) -> None:
        delay = self._retry_base_delay * (2**attempt)
        logger.warning(
            "api_request_retry",
            service=self.service,
            path=path,
            attempt=attempt + 1,
            max_retries=self._max_retries,
            delay=delay,
            **context,
        )
        await asyncio.sleep(delay)
