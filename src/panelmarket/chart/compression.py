"""Time-series downsampling for chart rendering and payload encoding for storage.

compress() is the count-based pipeline: contiguous groups of a fixed number
of points, sized by the timeframe. compress_by_interval() groups by
wall-clock boundaries instead, so the output does not change shape when the
upstream sampling rate changes.

Both are pure functions. Input must be ascending by timestamp_ms; unsorted
input raises PreconditionViolation rather than producing wrong buckets.
"""

import json
import zlib
from collections.abc import Sequence
from dataclasses import asdict
from decimal import Decimal, InvalidOperation

from panelmarket.chart.models import (
    AggregationMode,
    CompressedBucket,
    OHLCVPoint,
    Timeframe,
)
from panelmarket.exceptions import PreconditionViolation, StorageError

# Series at or below this length are returned unchanged.
BYPASS_THRESHOLD = 100

ENCODING_ZLIB = "zlib"
ENCODING_JSON = "json"
_DECIMAL_FIELDS = frozenset({"open", "high", "low", "close", "volume"})

ChartSeries = list[OHLCVPoint] | list[CompressedBucket]


def resolve_timeframe(timeframe: Timeframe | str) -> Timeframe:
    """Return the Timeframe for a member or its string value ("1D", "1W", ...)."""
    try:
        return Timeframe(timeframe)
    except ValueError:
        valid = ", ".join(t.value for t in Timeframe)
        raise PreconditionViolation(
            f"Unknown timeframe {timeframe!r}; expected one of {valid}"
        ) from None


def _check_ascending(points: Sequence[OHLCVPoint]) -> None:
    for i in range(1, len(points)):
        if points[i].timestamp_ms < points[i - 1].timestamp_ms:
            raise PreconditionViolation(
                f"Points must be ascending by timestamp: index {i} "
                f"({points[i].timestamp_ms}) precedes index {i - 1} "
                f"({points[i - 1].timestamp_ms})"
            )


def aggregate(
    points: Sequence[OHLCVPoint], mode: AggregationMode = AggregationMode.MEAN
) -> CompressedBucket:
    """Fold a non-empty group of points into one bucket.

    high/low are the exact max/min of the group and volume is the sum.
    MEAN mode averages opens and closes, so low <= open <= high is not
    guaranteed; CANDLE mode takes the first open and last close.
    """
    if not points:
        raise PreconditionViolation("Cannot aggregate an empty group of points")

    count = len(points)
    if mode is AggregationMode.CANDLE:
        open_ = points[0].open
        close = points[-1].close
    else:
        open_ = sum((p.open for p in points), Decimal("0")) / count
        close = sum((p.close for p in points), Decimal("0")) / count

    return CompressedBucket(
        timestamp_ms=points[0].timestamp_ms,
        open=open_,
        high=max(p.high for p in points),
        low=min(p.low for p in points),
        close=close,
        volume=sum((p.volume for p in points), Decimal("0")),
        point_count=count,
    )


def compress(
    points: Sequence[OHLCVPoint],
    timeframe: Timeframe | str,
    mode: AggregationMode = AggregationMode.MEAN,
) -> ChartSeries:
    """Downsample points into buckets of ``timeframe.points_per_bucket`` points.

    Returns the input unchanged (as a list) when it has at most
    BYPASS_THRESHOLD points. Otherwise returns ceil(len / ratio) buckets;
    the last bucket may hold fewer points.
    """
    tf = resolve_timeframe(timeframe)
    _check_ascending(points)

    if len(points) <= BYPASS_THRESHOLD:
        return list(points)

    ratio = tf.points_per_bucket
    return [
        aggregate(points[start : start + ratio], mode)
        for start in range(0, len(points), ratio)
    ]


def compress_by_interval(
    points: Sequence[OHLCVPoint],
    interval_ms: int,
    mode: AggregationMode = AggregationMode.MEAN,
) -> ChartSeries:
    """Downsample points into buckets aligned to ``interval_ms`` boundaries.

    A point belongs to bucket ``timestamp_ms // interval_ms``. Empty
    intervals produce no bucket. Bucket time is the first point's timestamp.
    """
    if interval_ms <= 0:
        raise PreconditionViolation(f"interval_ms must be > 0, got {interval_ms}")
    _check_ascending(points)

    if len(points) <= BYPASS_THRESHOLD:
        return list(points)

    buckets: list[CompressedBucket] = []
    group: list[OHLCVPoint] = []
    current_slot: int | None = None

    for point in points:
        slot = point.timestamp_ms // interval_ms
        if current_slot is not None and slot != current_slot:
            buckets.append(aggregate(group, mode))
            group = []
        group.append(point)
        current_slot = slot

    if group:
        buckets.append(aggregate(group, mode))
    return buckets


# ──────────────────────────────────────────────
# Storage encoding
# ──────────────────────────────────────────────


def _json_default(value: object) -> str:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def series_to_dicts(series: Sequence[OHLCVPoint | CompressedBucket | dict]) -> list[dict]:
    """Convert points/buckets to plain dicts. Dicts pass through untouched."""
    return [item if isinstance(item, dict) else asdict(item) for item in series]


def encode_series(
    series: Sequence[OHLCVPoint | CompressedBucket | dict], compress_payload: bool = True
) -> tuple[bytes, str]:
    """Serialize a series to JSON (Decimal as string), optionally zlib-compressed.

    Returns (blob, encoding).
    """
    raw = json.dumps(
        series_to_dicts(series), default=_json_default, separators=(",", ":")
    ).encode("utf-8")
    if compress_payload:
        return zlib.compress(raw), ENCODING_ZLIB
    return raw, ENCODING_JSON


def decode_series(blob: bytes, encoding: str) -> list[dict]:
    """Inverse of encode_series. Price fields come back as Decimal.

    Raises StorageError for an unknown encoding or a corrupt payload.
    """
    try:
        if encoding == ENCODING_ZLIB:
            raw = zlib.decompress(blob)
        elif encoding == ENCODING_JSON:
            raw = blob
        else:
            raise StorageError(f"Unknown payload encoding {encoding!r}")
        items = json.loads(raw.decode("utf-8"))
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise StorageError("Corrupt cached payload: expected a list of records")
        return [
            {
                key: Decimal(value) if key in _DECIMAL_FIELDS else value
                for key, value in item.items()
            }
            for item in items
        ]
    except (zlib.error, UnicodeDecodeError, ValueError, TypeError, InvalidOperation) as e:
        raise StorageError(f"Corrupt cached payload: {e}") from e


def series_from_dicts(items: Sequence[dict]) -> ChartSeries:
    """Rebuild points or buckets from decoded dicts (buckets carry point_count)."""
    return [
        CompressedBucket(**item) if "point_count" in item else OHLCVPoint(**item)
        for item in items
    ]
