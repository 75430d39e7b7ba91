"""FastAPI application factory for the chart data and comic API surface."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from panelmarket.api.routes import chart, comics, system
from panelmarket.exceptions import (
    ConfigurationError,
    ExternalApiError,
    PanelMarketError,
    PreconditionViolation,
    RateLimitExceeded,
    ResourceNotFound,
    StorageError,
    SymbolNotFound,
)
from panelmarket.logging import get_logger

logger = get_logger(__name__)

# Most specific first; ResourceNotFound must precede ExternalApiError.
_STATUS_BY_ERROR: list[tuple[type[PanelMarketError], int, str]] = [
    (RateLimitExceeded, 429, "rate_limit_exceeded"),
    (PreconditionViolation, 400, "invalid_request"),
    (SymbolNotFound, 404, "not_found"),
    (ResourceNotFound, 404, "not_found"),
    (ExternalApiError, 502, "upstream_error"),
    (StorageError, 503, "storage_unavailable"),
    (ConfigurationError, 500, "configuration_error"),
]


async def _handle_panel_market_error(request: Request, exc: Exception) -> JSONResponse:
    """Render domain errors as {"error", "detail"} bodies, never tracebacks."""
    for error_type, status, kind in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status, kind = 500, "internal_error"

    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceeded):
        # Retry-After is whole seconds, rounded up
        headers["Retry-After"] = str(max(1, -(-exc.retry_after_ms // 1000)))

    log = logger.error if status >= 500 else logger.info
    log("request_failed", path=request.url.path, status=status, error=str(exc))

    return JSONResponse(
        status_code=status,
        content={"error": kind, "detail": str(exc)},
        headers=headers,
    )


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        FastAPI application with routes and error handlers registered. Route
        handlers read their collaborators from app.state (chart_service,
        rate_limiter, cache, marvel_client, isbndb_client, comicvine_client).
    """
    app = FastAPI(
        title="Panel Market Chart Data API",
        lifespan=lifespan,
    )

    app.add_exception_handler(PanelMarketError, _handle_panel_market_error)

    app.include_router(system.router, prefix="/api")
    app.include_router(chart.router, prefix="/api")
    app.include_router(comics.router, prefix="/api")

    return app
