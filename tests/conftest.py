"""Shared test fixtures for the panel market chart data core."""

from collections.abc import Callable
from decimal import Decimal

import pytest

from panelmarket.chart.models import OHLCVPoint

# 2023-11-14 22:00:00 UTC, aligned to an hour boundary
BASE_TS_MS = 472_222 * 3_600_000
MINUTE_MS = 60_000


class FakeClock:
    """Manually advanced millisecond clock for limiter and cache tests."""

    def __init__(self, start_ms: int = BASE_TS_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def build_points(
    count: int, start_ms: int = BASE_TS_MS, step_ms: int = MINUTE_MS
) -> list[OHLCVPoint]:
    """Ascending one-minute points with distinct, easily summed values.

    Point i has open=100+i, close=101+i, high=open+5+(i%3), low=open-5-(i%2),
    volume=10+i.
    """
    points = []
    for i in range(count):
        open_ = Decimal(100 + i)
        points.append(
            OHLCVPoint(
                timestamp_ms=start_ms + i * step_ms,
                open=open_,
                high=open_ + 5 + (i % 3),
                low=open_ - 5 - (i % 2),
                close=open_ + 1,
                volume=Decimal(10 + i),
            )
        )
    return points


@pytest.fixture
def clock() -> FakeClock:
    """Fresh fake clock starting at BASE_TS_MS."""
    return FakeClock()


@pytest.fixture
def make_points() -> Callable[..., list[OHLCVPoint]]:
    """Factory for ascending OHLCV point series."""
    return build_points
