"""Periodic expiry sweep for the offline cache.

Lazy expiry in OfflineCache.get only removes keys that are read again;
this background task bounds storage growth from keys that never are.
"""

import asyncio

from panelmarket.cache.offline import OfflineCache
from panelmarket.exceptions import PanelMarketError, StorageError
from panelmarket.logging import get_logger

logger = get_logger(__name__)


class CacheSweeper:
    """Runs OfflineCache.sweep() every ``interval`` seconds in the background."""

    def __init__(self, cache: OfflineCache, interval: float = 3600.0) -> None:
        self._cache = cache
        self._interval = interval
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self.last_removed: int | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin sweeping in the background."""
        if self._running:
            logger.warning("cache_sweeper_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("cache_sweeper_started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the sweeper and wait for the loop to exit."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("cache_sweeper_stopped")

    async def sweep_once(self) -> int:
        """Run a single sweep and remember how many entries it removed."""
        removed = await self._cache.sweep()
        self.last_removed = removed
        return removed

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self.sweep_once()
            except StorageError:
                # Store may be briefly unavailable; try again next interval.
                logger.warning("cache_sweep_failed", exc_info=True)
            except PanelMarketError:
                # Closed or unconfigured cache; no later sweep can succeed.
                logger.error("cache_sweeper_aborted", exc_info=True)
                self._running = False
                return
            if self._running:
                await asyncio.sleep(self._interval)
