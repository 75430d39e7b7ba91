"""ComicVine API client for issue details."""

import httpx

from panelmarket.clients.base import RateLimitedClient
from panelmarket.config import ComicVineSettings
from panelmarket.exceptions import ConfigurationError, ExternalApiError
from panelmarket.ratelimit import RateLimiter


class ComicVineClient(RateLimitedClient):
    """Issue lookups against comicvine.gamespot.com.

    ComicVine reports application errors in the body (``error`` != "OK")
    with a 200 status; those are raised as ExternalApiError.
    """

    service = "comicvine"

    def __init__(
        self,
        settings: ComicVineSettings,
        limiter: RateLimiter,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        api_key = settings.api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError("ComicVine API key is required")

        super().__init__(
            limiter,
            base_url=settings.base_url,
            capacity=settings.rate_limit_capacity,
            window_ms=settings.rate_limit_window_ms,
            on_limit="fail",
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay,
            headers={"User-Agent": settings.user_agent},
            params={"api_key": api_key, "format": "json"},
            transport=transport,
        )

    async def get_issue(self, issue_id: int | str) -> dict:
        body = await self._request(f"/issue/4000-{issue_id}/")

        if not isinstance(body, dict):
            raise ExternalApiError(self.service, "Unexpected response shape")
        if body.get("error") != "OK":
            raise ExternalApiError(self.service, f"API error: {body.get('error')}")

        results = body.get("results")
        if isinstance(results, list):
            results = results[0] if results else None
        if not results:
            raise ExternalApiError(self.service, "Empty response from API")
        return results
