"""ISBNdb client for creator biographies and book search.

Quota is 2 calls per second, so requests wait for the next window rather
than failing.
"""

from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from panelmarket.clients.base import RateLimitedClient
from panelmarket.config import IsbndbSettings
from panelmarket.exceptions import ConfigurationError, ResourceNotFound
from panelmarket.ratelimit import RateLimiter


@dataclass
class CreatorBiography:
    """Author record normalized from ISBNdb's /author endpoint."""

    name: str
    biography: str = ""
    birth_date: str | None = None
    death_date: str | None = None
    nationality: str | None = None
    notable_works: list = field(default_factory=list)
    awards: list = field(default_factory=list)
    links: list = field(default_factory=list)


class IsbndbClient(RateLimitedClient):
    service = "isbndb"

    def __init__(
        self,
        settings: IsbndbSettings,
        limiter: RateLimiter,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        api_key = settings.api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError("ISBNdb API key is required")

        super().__init__(
            limiter,
            base_url=settings.base_url,
            capacity=settings.rate_limit_capacity,
            window_ms=settings.rate_limit_window_ms,
            on_limit="wait",
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay,
            headers={"Authorization": api_key},
            transport=transport,
        )

    async def get_author(self, name: str) -> CreatorBiography | None:
        """Return the author's biography, or None if ISBNdb has no such author."""
        try:
            data = await self._request(f"/author/{quote(name, safe='')}")
        except ResourceNotFound:
            return None

        return CreatorBiography(
            name=data.get("author") or data.get("name") or name,
            biography=data.get("bio") or "",
            birth_date=data.get("born"),
            death_date=data.get("died"),
            nationality=data.get("nationality"),
            notable_works=data.get("books") or [],
            awards=data.get("awards") or [],
            links=data.get("links") or [],
        )

    async def search_books(self, query: str) -> list[dict]:
        """Return books matching ``query``; empty when nothing matches."""
        try:
            data = await self._request(f"/books/{quote(query, safe='')}")
        except ResourceNotFound:
            return []
        return data.get("books") or []
