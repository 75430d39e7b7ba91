"""Fixed-window rate limiter keyed by external resource name.

Each key allows at most ``capacity`` permits per ``window_ms`` milliseconds.
``consume`` is fail-fast and raises RateLimitExceeded; ``acquire`` waits for
the window to reset instead. Which one a caller uses is a per-call-site
decision (see the clients package).

The check-and-increment in ``consume`` holds a per-key threading.Lock, so the
limiter stays correct when FastAPI runs sync handlers in its threadpool, not
only under the single-threaded event loop.
"""

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from panelmarket.exceptions import ConfigurationError, RateLimitExceeded
from panelmarket.logging import get_logger

logger = get_logger(__name__)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _check_points(key: str, points: int) -> None:
    if points < 1:
        raise ConfigurationError(f"points must be >= 1 for '{key}', got {points}")


@dataclass(frozen=True)
class LimiterStatus:
    """Read-only snapshot of one limiter's window."""

    key: str
    capacity: int
    window_ms: int
    remaining: int
    ms_before_reset: int


class _Window:
    """Mutable window state for one key. Only touched under ``lock``."""

    __slots__ = ("capacity", "window_ms", "consumed", "window_start_ms", "lock")

    def __init__(self, capacity: int, window_ms: int, now_ms: int) -> None:
        self.capacity = capacity
        self.window_ms = window_ms
        self.consumed = 0
        self.window_start_ms = now_ms
        self.lock = threading.Lock()

    def roll(self, now_ms: int) -> None:
        if now_ms - self.window_start_ms >= self.window_ms:
            self.consumed = 0
            self.window_start_ms = now_ms

    def ms_before_reset(self, now_ms: int) -> int:
        return max(0, self.window_start_ms + self.window_ms - now_ms)


class RateLimiter:
    """Registry of fixed-window limiters.

    Construct one per process at the composition root and pass it to every
    client that needs it.

    Usage:
        limiter = RateLimiter()
        limiter.create_limiter("marvel", capacity=3000, window_ms=86_400_000)
        limiter.consume("marvel")          # raises RateLimitExceeded when spent
        await limiter.acquire("isbndb")    # waits for the next window instead
    """

    def __init__(self, clock: Callable[[], int] = _monotonic_ms) -> None:
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._registry_lock = threading.Lock()

    def create_limiter(self, key: str, capacity: int, window_ms: int) -> None:
        """Register a limiter for ``key``. Re-registering resets its state."""
        if capacity <= 0:
            raise ConfigurationError(f"capacity must be > 0 for '{key}', got {capacity}")
        if window_ms <= 0:
            raise ConfigurationError(f"window_ms must be > 0 for '{key}', got {window_ms}")

        with self._registry_lock:
            self._windows[key] = _Window(capacity, window_ms, self._clock())

        logger.debug(
            "rate_limiter_registered",
            key=key,
            capacity=capacity,
            window_ms=window_ms,
        )

    def consume(self, key: str, points: int = 1) -> LimiterStatus:
        """Take ``points`` permits from ``key`` or raise RateLimitExceeded.

        Never blocks. A request for more points than the window allows is
        rejected whole; partial consumption does not happen.
        """
        _check_points(key, points)
        window = self._window(key)
        with window.lock:
            now = self._clock()
            window.roll(now)

            if window.consumed + points > window.capacity:
                retry_after = window.ms_before_reset(now)
                logger.info(
                    "rate_limit_exceeded",
                    key=key,
                    consumed=window.consumed,
                    capacity=window.capacity,
                    retry_after_ms=retry_after,
                )
                raise RateLimitExceeded(key, retry_after)

            window.consumed += points
            return self._snapshot(key, window, now)

    async def acquire(
        self, key: str, points: int = 1, timeout: float | None = None
    ) -> LimiterStatus:
        """Take ``points`` permits, sleeping until the window resets if needed.

        Raises RateLimitExceeded if the permit cannot be obtained within
        ``timeout`` seconds, or immediately when ``points`` exceeds capacity.
        """
        _check_points(key, points)
        window = self._window(key)
        if points > window.capacity:
            raise RateLimitExceeded(key, window.window_ms)

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            try:
                return self.consume(key, points)
            except RateLimitExceeded as e:
                delay = max(e.retry_after_ms, 1) / 1000
                if deadline is not None and loop.time() + delay > deadline:
                    raise
                logger.debug("rate_limit_waiting", key=key, delay=delay)
                await asyncio.sleep(delay)

    def status(self, key: str) -> LimiterStatus:
        """Return the current window snapshot for ``key`` without consuming."""
        window = self._window(key)
        with window.lock:
            now = self._clock()
            window.roll(now)
            return self._snapshot(key, window, now)

    def reset(self, key: str) -> None:
        """Start a fresh window for ``key``."""
        window = self._window(key)
        with window.lock:
            window.consumed = 0
            window.window_start_ms = self._clock()

    def keys(self) -> list[str]:
        """Return registered limiter keys in registration order."""
        with self._registry_lock:
            return list(self._windows)

    def _window(self, key: str) -> _Window:
        with self._registry_lock:
            window = self._windows.get(key)
        if window is None:
            raise ConfigurationError(f"No rate limiter registered for '{key}'")
        return window

    @staticmethod
    def _snapshot(key: str, window: _Window, now_ms: int) -> LimiterStatus:
        return LimiterStatus(
            key=key,
            capacity=window.capacity,
            window_ms=window.window_ms,
            remaining=window.capacity - window.consumed,
            ms_before_reset=window.ms_before_reset(now_ms),
        )
