"""Tests for OHLCV downsampling and series encoding.

Point i in the fixture series has open=100+i, close=101+i, volume=10+i, so
bucket means and sums can be checked with exact Decimal values.
"""

import math
import zlib
from dataclasses import asdict
from decimal import Decimal

import pytest

from panelmarket.chart.compression import (
    BYPASS_THRESHOLD,
    ENCODING_JSON,
    ENCODING_ZLIB,
    aggregate,
    compress,
    compress_by_interval,
    decode_series,
    encode_series,
    series_from_dicts,
)
from panelmarket.chart.models import (
    AggregationMode,
    CompressedBucket,
    OHLCVPoint,
    Timeframe,
)
from panelmarket.exceptions import PreconditionViolation, StorageError

HOUR_MS = 3_600_000


class TestTimeframe:
    @pytest.mark.parametrize(
        ("value", "ratio"),
        [("1D", 5), ("1W", 15), ("1M", 60), ("3M", 1440), ("1Y", 10080), ("ALL", 43200)],
    )
    def test_points_per_bucket(self, value: str, ratio: int) -> None:
        assert Timeframe(value).points_per_bucket == ratio

    def test_interval_is_explicit_duration(self) -> None:
        assert Timeframe.ONE_MONTH.interval_ms == HOUR_MS
        assert Timeframe.THREE_MONTHS.interval_ms == 24 * HOUR_MS


class TestBypass:
    """Series at or below the threshold are returned unchanged."""

    def test_threshold_constant(self) -> None:
        assert BYPASS_THRESHOLD == 100

    @pytest.mark.parametrize("count", [0, 1, 99, 100])
    def test_small_series_identity(self, make_points, count: int) -> None:
        points = make_points(count)
        assert compress(points, "1D") == points

    def test_101_points_are_compressed(self, make_points) -> None:
        result = compress(make_points(101), "1D")
        assert len(result) == 21
        assert all(isinstance(b, CompressedBucket) for b in result)
        assert result[-1].point_count == 1


class TestCountBucketing:
    def test_150_points_hourly_gives_three_buckets(self, make_points) -> None:
        result = compress(make_points(150), Timeframe.ONE_MONTH)
        assert [b.point_count for b in result] == [60, 60, 30]

    @pytest.mark.parametrize("timeframe", ["1D", "1W", "1M", "3M"])
    @pytest.mark.parametrize("count", [101, 150, 333, 1500])
    def test_output_length_is_ceiling(self, make_points, timeframe: str, count: int) -> None:
        ratio = Timeframe(timeframe).points_per_bucket
        result = compress(make_points(count), timeframe)
        assert len(result) == math.ceil(count / ratio)
        assert sum(b.point_count for b in result) == count

    def test_high_low_exact_extremes(self, make_points) -> None:
        points = make_points(333)
        result = compress(points, "1W")
        for index, bucket in enumerate(result):
            group = points[index * 15 : (index + 1) * 15]
            assert bucket.high == max(p.high for p in group)
            assert bucket.low == min(p.low for p in group)

    def test_bucket_time_is_first_point_time(self, make_points) -> None:
        points = make_points(150)
        result = compress(points, "1M")
        assert [b.timestamp_ms for b in result] == [
            points[0].timestamp_ms,
            points[60].timestamp_ms,
            points[120].timestamp_ms,
        ]

    def test_mean_open_close_and_summed_volume(self, make_points) -> None:
        result = compress(make_points(150), "1M")

        assert result[0].open == Decimal("129.5")
        assert result[0].close == Decimal("130.5")
        assert result[0].volume == Decimal("2370")

        # Short tail bucket: points 120..149
        assert result[2].open == Decimal("234.5")
        assert result[2].close == Decimal("235.5")

    def test_candle_mode_first_open_last_close(self, make_points) -> None:
        result = compress(make_points(150), "1M", mode=AggregationMode.CANDLE)
        assert result[0].open == Decimal("100")
        assert result[0].close == Decimal("160")
        assert result[2].open == Decimal("220")
        assert result[2].close == Decimal("250")

    def test_candle_mode_stays_within_range(self, make_points) -> None:
        for bucket in compress(make_points(500), "1W", mode=AggregationMode.CANDLE):
            assert bucket.low <= bucket.open <= bucket.high
            assert bucket.low <= bucket.close <= bucket.high

    def test_idempotent(self, make_points) -> None:
        points = make_points(700)
        assert compress(points, "1M") == compress(points, "1M")

    def test_does_not_mutate_input(self, make_points) -> None:
        points = make_points(150)
        snapshot = list(points)
        compress(points, "1M")
        assert points == snapshot


class TestPreconditions:
    def test_unsorted_input_raises(self, make_points) -> None:
        points = make_points(150)
        points[10], points[11] = points[11], points[10]
        with pytest.raises(PreconditionViolation, match="ascending"):
            compress(points, "1M")

    def test_unsorted_small_input_raises(self, make_points) -> None:
        points = list(reversed(make_points(5)))
        with pytest.raises(PreconditionViolation):
            compress(points, "1D")

    def test_equal_timestamps_allowed(self, make_points) -> None:
        points = make_points(120, step_ms=0)
        assert len(compress(points, "1M")) == 2

    def test_unknown_timeframe_raises(self, make_points) -> None:
        with pytest.raises(PreconditionViolation, match="5Y"):
            compress(make_points(150), "5Y")

    def test_unknown_timeframe_raises_for_small_input(self, make_points) -> None:
        with pytest.raises(PreconditionViolation):
            compress(make_points(3), "2D")

    def test_aggregate_empty_group(self) -> None:
        with pytest.raises(PreconditionViolation):
            aggregate([])


class TestIntervalBucketing:
    def test_hour_boundaries(self, make_points) -> None:
        result = compress_by_interval(make_points(150), HOUR_MS)
        assert [b.point_count for b in result] == [60, 60, 30]

    def test_independent_of_sampling_rate(self, make_points) -> None:
        one_minute = compress_by_interval(make_points(240), HOUR_MS)
        two_minute = compress_by_interval(make_points(120, step_ms=120_000), HOUR_MS)
        assert len(one_minute) == len(two_minute) == 4
        assert [b.timestamp_ms for b in one_minute] == [
            b.timestamp_ms for b in two_minute
        ]

    def test_gaps_produce_no_empty_buckets(self, make_points) -> None:
        first = make_points(60)
        later = make_points(60, start_ms=first[0].timestamp_ms + 3 * HOUR_MS)
        result = compress_by_interval(first + later, HOUR_MS)
        assert len(result) == 2
        assert result[1].timestamp_ms == later[0].timestamp_ms

    def test_small_series_identity(self, make_points) -> None:
        points = make_points(50)
        assert compress_by_interval(points, HOUR_MS) == points

    def test_invalid_interval(self, make_points) -> None:
        with pytest.raises(PreconditionViolation):
            compress_by_interval(make_points(150), 0)

    def test_unsorted_input_raises(self, make_points) -> None:
        with pytest.raises(PreconditionViolation):
            compress_by_interval(list(reversed(make_points(150))), HOUR_MS)


class TestEncoding:
    def test_zlib_round_trip(self, make_points) -> None:
        buckets = compress(make_points(150), "1M")
        blob, encoding = encode_series(buckets)

        assert encoding == ENCODING_ZLIB
        assert decode_series(blob, encoding) == [asdict(b) for b in buckets]

    def test_plain_json_round_trip(self, make_points) -> None:
        points = make_points(3)
        blob, encoding = encode_series(points, compress_payload=False)

        assert encoding == ENCODING_JSON
        assert blob.startswith(b"[{")
        assert decode_series(blob, encoding) == [asdict(p) for p in points]

    def test_decimals_survive_as_exact_values(self) -> None:
        point = OHLCVPoint(
            timestamp_ms=1,
            open=Decimal("0.1"),
            high=Decimal("0.30000000000000004"),
            low=Decimal("0.05"),
            close=Decimal("0.2"),
            volume=Decimal("1E+3"),
        )
        blob, encoding = encode_series([point])
        assert decode_series(blob, encoding)[0]["high"] == Decimal("0.30000000000000004")

    def test_series_from_dicts_rebuilds_types(self, make_points) -> None:
        buckets = compress(make_points(150), "1M")
        points = make_points(2)
        blob, encoding = encode_series(buckets)
        assert series_from_dicts(decode_series(blob, encoding)) == buckets
        assert series_from_dicts([asdict(p) for p in points]) == points

    def test_corrupt_blob_raises_storage_error(self) -> None:
        with pytest.raises(StorageError, match="Corrupt"):
            decode_series(b"not zlib at all", ENCODING_ZLIB)

    def test_corrupt_json_raises_storage_error(self) -> None:
        with pytest.raises(StorageError):
            decode_series(zlib.compress(b"{truncated"), ENCODING_ZLIB)

    @pytest.mark.parametrize(
        "payload",
        [
            b'[{"open":"abc"}]',
            b'[{"open":null}]',
            b'{"a":1}',
            b'["SPDR"]',
            b"42",
        ],
    )
    def test_well_formed_json_of_wrong_shape_raises_storage_error(
        self, payload: bytes
    ) -> None:
        with pytest.raises(StorageError, match="Corrupt"):
            decode_series(zlib.compress(payload), ENCODING_ZLIB)

    def test_unknown_encoding_raises_storage_error(self) -> None:
        with pytest.raises(StorageError, match="lz"):
            decode_series(b"[]", "lz")
