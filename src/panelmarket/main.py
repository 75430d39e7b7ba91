"""Entry point for the panel market chart data service.

Wires all components together and serves the FastAPI app through uvicorn.
The cache, its sweeper and the API clients share the server's asyncio event
loop; FastAPI's lifespan context manager opens and closes them.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. RateLimiter (one per process, passed to every client)
4. OfflineCache (not yet initialized)
5. CacheSweeper (periodic expiry)
6. MarketDataSource
7. ChartDataService (source -> compression -> cache)
8. MarvelClient / IsbndbClient / ComicVineClient (skipped when unconfigured)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from panelmarket.cache import CacheSweeper, OfflineCache
from panelmarket.chart.models import AggregationMode
from panelmarket.chart.service import ChartDataService, InMemoryMarketDataSource
from panelmarket.clients import ComicVineClient, IsbndbClient, MarvelClient
from panelmarket.config import AppSettings
from panelmarket.exceptions import ConfigurationError
from panelmarket.logging import get_logger, setup_logging
from panelmarket.ratelimit import RateLimiter

_CLIENT_NAMES = ("marvel_client", "isbndb_client", "comicvine_client")


def _build_client(factory: Any, settings: Any, limiter: RateLimiter) -> Any:
    """Construct an API client, or return None when its keys are missing."""
    logger = get_logger("panelmarket.main")
    try:
        return factory(settings, limiter)
    except ConfigurationError as e:
        logger.warning("api_client_disabled", client=factory.__name__, reason=str(e))
        return None


def _build_components(
    settings: AppSettings, source: InMemoryMarketDataSource | None = None
) -> dict[str, Any]:
    """Build all components from settings.

    Does NOT initialize the cache or start the sweeper; the lifespan does.

    Args:
        settings: Application-wide settings.
        source: Market data source; an empty in-memory source when omitted.

    Returns:
        Dict mapping component names to instances.
    """
    rate_limiter = RateLimiter()

    cache = OfflineCache(
        db_path=settings.cache.db_path,
        ttl_ms=settings.cache.ttl_hours * 60 * 60 * 1000,
        compress_payload=settings.cache.compress_payload,
        default_timeout=settings.cache.operation_timeout,
    )
    sweeper = CacheSweeper(cache, interval=settings.cache.sweep_interval_seconds)

    market_source = source if source is not None else InMemoryMarketDataSource()
    chart_service = ChartDataService(
        market_source,
        cache,
        mode=AggregationMode(settings.chart.aggregation),
        bucketing=settings.chart.bucketing,
    )

    return {
        "rate_limiter": rate_limiter,
        "cache": cache,
        "sweeper": sweeper,
        "market_source": market_source,
        "chart_service": chart_service,
        "marvel_client": _build_client(MarvelClient, settings.marvel, rate_limiter),
        "isbndb_client": _build_client(IsbndbClient, settings.isbndb, rate_limiter),
        "comicvine_client": _build_client(
            ComicVineClient, settings.comicvine, rate_limiter
        ),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state, initializes the offline
    cache and starts the sweeper.

    On shutdown: stops the sweeper, closes API clients and the cache.
    """
    logger = get_logger("panelmarket.main")
    components = app.state.components

    for name, component in components.items():
        setattr(app.state, name, component)

    await components["cache"].initialize()
    await components["sweeper"].start()

    logger.info(
        "lifespan_started",
        clients=[name for name in _CLIENT_NAMES if components[name] is not None],
    )

    yield

    await components["sweeper"].stop()

    for name in _CLIENT_NAMES:
        client = components[name]
        if client is not None:
            await client.close()

    await components["cache"].close()

    logger.info("panel_market_stopped")


def build_app(settings: AppSettings) -> FastAPI:
    """Create the app with components attached and the lifespan wired in."""
    from panelmarket.api.app import create_app

    app = create_app(lifespan=lifespan)
    app.state.settings = settings
    app.state.components = _build_components(settings)
    return app


async def run() -> None:
    """Run the service.

    When SERVER_ENABLED is false only the cache and sweeper run, which is
    useful for a maintenance process that keeps the store bounded.
    """
    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("panelmarket.main")

    if settings.server.enabled:
        app = build_app(settings)
        logger.info(
            "starting_api_server",
            host=settings.server.host,
            port=settings.server.port,
        )
        config = uvicorn.Config(
            app,
            host=settings.server.host,
            port=settings.server.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        components = _build_components(settings)
        cache: OfflineCache = components["cache"]
        sweeper: CacheSweeper = components["sweeper"]

        logger.info("starting_sweeper_only", interval=settings.cache.sweep_interval_seconds)
        await cache.initialize()
        await sweeper.start()
        try:
            await asyncio.Event().wait()
        finally:
            await sweeper.stop()
            await cache.close()
            logger.info("panel_market_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
