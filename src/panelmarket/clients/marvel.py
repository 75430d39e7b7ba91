"""Marvel developer API client.

Quota is 3000 calls per day, so the limiter policy is fail-fast: a spent
quota will not free up within any reasonable request lifetime.
"""

import hashlib
import time
from typing import Any

import httpx

from panelmarket.clients.base import RateLimitedClient
from panelmarket.config import MarvelSettings
from panelmarket.exceptions import ConfigurationError, ExternalApiError, ResourceNotFound
from panelmarket.ratelimit import RateLimiter

SEARCH_LIMIT = 20


class MarvelClient(RateLimitedClient):
    """Characters and creators from gateway.marvel.com."""

    service = "marvel"

    def __init__(
        self,
        settings: MarvelSettings,
        limiter: RateLimiter,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._public_key = settings.public_key.get_secret_value()
        self._private_key = settings.private_key.get_secret_value()
        if not self._public_key or not self._private_key:
            raise ConfigurationError("Marvel public and private keys are required")

        super().__init__(
            limiter,
            base_url=settings.base_url,
            capacity=settings.rate_limit_capacity,
            window_ms=settings.rate_limit_window_ms,
            on_limit="fail",
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay,
            transport=transport,
        )

    def _auth_params(self) -> dict[str, str]:
        """Server-side auth: md5(ts + private_key + public_key)."""
        ts = str(int(time.time() * 1000))
        digest = hashlib.md5(
            (ts + self._private_key + self._public_key).encode("utf-8")
        ).hexdigest()
        return {"ts": ts, "apikey": self._public_key, "hash": digest}

    async def _results(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        body = await self._request(path, params={**self._auth_params(), **(params or {})})
        try:
            return body["data"]["results"]
        except (KeyError, TypeError) as e:
            raise ExternalApiError(self.service, "Unexpected response shape") from e

    async def _single(self, path: str) -> dict:
        results = await self._results(path)
        if not results:
            raise ResourceNotFound(self.service, f"Not found: {path}", status_code=404)
        return results[0]

    async def get_creator(self, creator_id: int | str) -> dict:
        return await self._single(f"/creators/{creator_id}")

    async def search_creators(self, name_prefix: str) -> list[dict]:
        return await self._results(
            "/creators", {"nameStartsWith": name_prefix, "limit": SEARCH_LIMIT}
        )

    async def get_character(self, character_id: int | str) -> dict:
        return await self._single(f"/characters/{character_id}")

    async def search_characters(self, name_prefix: str) -> list[dict]:
        return await self._results(
            "/characters", {"nameStartsWith": name_prefix, "limit": SEARCH_LIMIT}
        )
