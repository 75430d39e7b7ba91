"""Custom exceptions for the panel market chart data core.

Rate limiting, compression, caching and external API errors all live here
so that the HTTP layer can map them to responses without importing every
subsystem.
"""


class PanelMarketError(Exception):
    """Base exception for all panel market errors."""


class ConfigurationError(PanelMarketError):
    """Raised for an unregistered limiter key, an uninitialized cache, or bad settings."""


class RateLimitExceeded(PanelMarketError):
    """Raised when a limiter has no permits left in its current window.

    Recoverable: callers decide whether to wait ``retry_after_ms`` and retry.
    """

    def __init__(self, key: str, retry_after_ms: int) -> None:
        self.key = key
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Rate limit exceeded for '{key}', retry after {retry_after_ms}ms"
        )


class StorageError(PanelMarketError):
    """Raised when the persistent cache store fails (unavailable, full, corrupt)."""


class PreconditionViolation(PanelMarketError):
    """Raised when compression input is unsorted or the timeframe is unknown."""


class SymbolNotFound(PanelMarketError):
    """Raised when the market data source has no series for a symbol."""


class ExternalApiError(PanelMarketError):
    """Raised when an upstream API request fails after retries."""

    def __init__(
        self, service: str, message: str, status_code: int | None = None
    ) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class ResourceNotFound(ExternalApiError):
    """Raised when an upstream API answers 404 for the requested resource."""
