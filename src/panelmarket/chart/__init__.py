"""Chart data pipeline: OHLCV models and downsampling.

The cached chart service lives in panelmarket.chart.service and is imported
from there directly, since it depends on the cache package.
"""

from panelmarket.chart.compression import (
    BYPASS_THRESHOLD,
    compress,
    compress_by_interval,
)
from panelmarket.chart.models import (
    AggregationMode,
    CompressedBucket,
    OHLCVPoint,
    Timeframe,
)

__all__ = [
    "AggregationMode",
    "BYPASS_THRESHOLD",
    "CompressedBucket",
    "OHLCVPoint",
    "Timeframe",
    "compress",
    "compress_by_interval",
]
