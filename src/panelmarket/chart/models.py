"""Data models for OHLCV price points and chart buckets.

All price and volume fields use Decimal. Timestamps are epoch milliseconds.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

_MINUTE_MS = 60_000


@dataclass(frozen=True)
class OHLCVPoint:
    """A single raw OHLCV sample from the market data source."""

    timestamp_ms: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class CompressedBucket:
    """Aggregate of consecutive OHLCVPoints covering one chart interval."""

    timestamp_ms: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    point_count: int


class AggregationMode(str, Enum):
    """How a bucket's open and close are derived from its points."""

    MEAN = "mean"  # average of opens / closes
    CANDLE = "candle"  # first open, last close


class Timeframe(str, Enum):
    """Chart timeframe selector.

    Each member carries a fixed point count per bucket (used by count
    bucketing) and an explicit wall-clock interval (used by interval
    bucketing).
    """

    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1Y"
    ALL = "ALL"

    @property
    def points_per_bucket(self) -> int:
        return _POINTS_PER_BUCKET[self]

    @property
    def interval_ms(self) -> int:
        return _INTERVAL_MS[self]


_POINTS_PER_BUCKET: dict[Timeframe, int] = {
    Timeframe.ONE_DAY: 5,
    Timeframe.ONE_WEEK: 15,
    Timeframe.ONE_MONTH: 60,
    Timeframe.THREE_MONTHS: 1440,
    Timeframe.ONE_YEAR: 10080,
    Timeframe.ALL: 43200,
}

_INTERVAL_MS: dict[Timeframe, int] = {
    Timeframe.ONE_DAY: 5 * _MINUTE_MS,
    Timeframe.ONE_WEEK: 15 * _MINUTE_MS,
    Timeframe.ONE_MONTH: 60 * _MINUTE_MS,
    Timeframe.THREE_MONTHS: 1440 * _MINUTE_MS,
    Timeframe.ONE_YEAR: 10080 * _MINUTE_MS,
    Timeframe.ALL: 43200 * _MINUTE_MS,
}
