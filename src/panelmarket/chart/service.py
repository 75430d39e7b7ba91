"""Cached chart data pipeline: market data source → compression → offline cache.

Cache read failures degrade to a miss and the series is recomputed from the
source. Cache write failures are logged and reported on the result
(``cached=False``) without failing the request.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

import structlog

from panelmarket.cache.offline import OfflineCache
from panelmarket.chart.compression import (
    ChartSeries,
    compress,
    compress_by_interval,
    resolve_timeframe,
    series_from_dicts,
)
from panelmarket.chart.models import AggregationMode, OHLCVPoint, Timeframe
from panelmarket.exceptions import StorageError, SymbolNotFound
from panelmarket.logging import get_logger

logger = get_logger(__name__)


class MarketDataSource(ABC):
    """Upstream provider of raw OHLCV series."""

    @abstractmethod
    async def fetch_ohlcv(self, symbol: str) -> list[OHLCVPoint]:
        """Return the full series for ``symbol``, ascending by timestamp.

        Raises SymbolNotFound if the symbol is unknown.
        """
        ...


class InMemoryMarketDataSource(MarketDataSource):
    """Market data source backed by series loaded into memory."""

    def __init__(self, series: dict[str, Sequence[OHLCVPoint]] | None = None) -> None:
        self._series: dict[str, list[OHLCVPoint]] = {
            symbol: list(points) for symbol, points in (series or {}).items()
        }

    def load(self, symbol: str, points: Sequence[OHLCVPoint]) -> None:
        """Register or replace the series for ``symbol``."""
        self._series[symbol] = list(points)

    def symbols(self) -> list[str]:
        return sorted(self._series)

    async def fetch_ohlcv(self, symbol: str) -> list[OHLCVPoint]:
        try:
            return list(self._series[symbol])
        except KeyError:
            raise SymbolNotFound(f"No market data for symbol '{symbol}'") from None


@dataclass
class ChartResult:
    """Chart series for one (symbol, timeframe) request."""

    symbol: str
    timeframe: Timeframe
    series: ChartSeries
    from_cache: bool
    cached: bool  # True if the series is (now) persisted in the cache


class ChartDataService:
    """Serves downsampled chart series, caching them per (symbol, timeframe).

    Usage:
        service = ChartDataService(source, cache)
        result = await service.get_chart("SPDR", "1M")
    """

    def __init__(
        self,
        source: MarketDataSource,
        cache: OfflineCache,
        mode: AggregationMode = AggregationMode.MEAN,
        bucketing: Literal["count", "interval"] = "count",
    ) -> None:
        self._source = source
        self._cache = cache
        self._mode = mode
        self._bucketing = bucketing

    async def get_chart(self, symbol: str, timeframe: Timeframe | str) -> ChartResult:
        """Return the chart series, from cache when fresh, else recomputed."""
        tf = resolve_timeframe(timeframe)

        with structlog.contextvars.bound_contextvars(symbol=symbol, timeframe=tf.value):
            cached = await self._read_cache(symbol, tf)
            if cached is not None:
                return ChartResult(
                    symbol=symbol,
                    timeframe=tf,
                    series=cached,
                    from_cache=True,
                    cached=True,
                )

            points = await self._source.fetch_ohlcv(symbol)
            series = self._compress(points, tf)
            stored = await self._write_cache(symbol, tf, series)

            logger.info(
                "chart_computed",
                raw_points=len(points),
                output_points=len(series),
                cached=stored,
            )
            return ChartResult(
                symbol=symbol,
                timeframe=tf,
                series=series,
                from_cache=False,
                cached=stored,
            )

    def _compress(self, points: list[OHLCVPoint], tf: Timeframe) -> ChartSeries:
        if self._bucketing == "interval":
            return compress_by_interval(points, tf.interval_ms, self._mode)
        return compress(points, tf, self._mode)

    async def _read_cache(self, symbol: str, tf: Timeframe) -> ChartSeries | None:
        try:
            cached = await self._cache.get(symbol, tf.value)
            if cached is None:
                return None
            try:
                return series_from_dicts(cached)
            except TypeError as e:
                raise StorageError(f"Cached record has unexpected fields: {e}") from e
        except StorageError as e:
            logger.warning("chart_cache_read_failed", error=str(e))
            return None

    async def _write_cache(
        self, symbol: str, tf: Timeframe, series: ChartSeries
    ) -> bool:
        try:
            await self._cache.put(symbol, tf.value, series)
        except StorageError as e:
            logger.warning("chart_cache_write_failed", error=str(e))
            return False
        return True
