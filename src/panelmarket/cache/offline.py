"""Async SQLite key-value store for compressed chart series.

One table, ``time_series``, keyed by ``symbol + "-" + timeframe``. Entries
expire ``ttl`` after they were written. Expiry is enforced on two separate
paths: ``get`` deletes an expired entry it happens to read, and ``sweep``
deletes every expired entry whether or not it is ever read again.

All storage failures surface as StorageError so callers can fall back to
uncached computation.
"""

import asyncio
import os
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Self, TypeVar

import aiosqlite

from panelmarket.chart.compression import decode_series, encode_series
from panelmarket.exceptions import ConfigurationError, StorageError
from panelmarket.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
TABLE_NAME = "time_series"

_CREATE_SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    data BLOB NOT NULL,
    encoding TEXT NOT NULL,
    timestamp INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_timestamp
    ON {TABLE_NAME}(timestamp);
"""


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def cache_key(symbol: str, timeframe: str) -> str:
    """Primary key for a (symbol, timeframe) pair."""
    return f"{symbol}-{timeframe}"


class OfflineCache:
    """Persistent cache of chart series with time-based expiry.

    Usage:
        # Context manager (recommended)
        async with OfflineCache("data/market_chart_cache.db") as cache:
            await cache.put("SPDR", "1D", buckets)
            series = await cache.get("SPDR", "1D")

        # Manual lifecycle
        cache = OfflineCache("data/market_chart_cache.db")
        await cache.initialize()
        try:
            removed = await cache.sweep()
        finally:
            await cache.close()

    Every operation accepts an optional ``timeout`` in seconds; when omitted
    the cache-wide ``default_timeout`` applies (None disables it).
    """

    def __init__(
        self,
        db_path: str = "data/market_chart_cache.db",
        ttl_ms: int = DEFAULT_TTL_MS,
        compress_payload: bool = True,
        default_timeout: float | None = None,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._db_path = db_path
        self._ttl_ms = ttl_ms
        self._compress_payload = compress_payload
        self._default_timeout = default_timeout
        self._clock = clock
        self._connection: aiosqlite.Connection | None = None
        self._init_lock = asyncio.Lock()

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @property
    def is_initialized(self) -> bool:
        return self._connection is not None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises ConfigurationError if initialize() has not completed.
        """
        if self._connection is None:
            raise ConfigurationError(
                "Offline cache not initialized. Call initialize() first."
            )
        return self._connection

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def initialize(self, timeout: float | None = None) -> None:
        """Open the store and create the schema. Safe to call repeatedly and concurrently.

        Concurrent callers wait on the same lock; only the first opens the
        connection.
        """
        if self._connection is not None:
            return

        async with self._init_lock:
            if self._connection is not None:
                return
            self._connection = await self._guard(self._open(), timeout, "initialize")

        logger.info("offline_cache_initialized", db_path=self._db_path)

    async def _open(self) -> aiosqlite.Connection:
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        connection = await aiosqlite.connect(self._db_path)
        try:
            await connection.execute("PRAGMA journal_mode=WAL")
            await connection.execute("PRAGMA synchronous=NORMAL")
            await connection.executescript(_CREATE_SCHEMA_SQL)
            await connection.commit()
        except BaseException:
            await connection.close()
            raise
        return connection

    async def close(self) -> None:
        """Close the store if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("offline_cache_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    # ──────────────────────────────────────────────
    # Operations
    # ──────────────────────────────────────────────

    async def put(
        self,
        symbol: str,
        timeframe: str,
        data: Sequence[Any],
        timeout: float | None = None,
    ) -> None:
        """Serialize ``data`` and store it under (symbol, timeframe), replacing any entry."""
        db = self.db
        blob, encoding = encode_series(data, compress_payload=self._compress_payload)
        key = cache_key(symbol, timeframe)

        async def _write() -> None:
            await db.execute(
                f"INSERT OR REPLACE INTO {TABLE_NAME} "
                "(id, symbol, timeframe, data, encoding, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (key, symbol, timeframe, blob, encoding, self._clock()),
            )
            await db.commit()

        await self._guard(_write(), timeout, "put")
        logger.debug("cache_put", key=key, points=len(data), bytes=len(blob))

    async def get(
        self,
        symbol: str,
        timeframe: str,
        timeout: float | None = None,
    ) -> list[dict] | None:
        """Return the stored series for (symbol, timeframe), or None.

        An entry older than the TTL is deleted and reported as a miss.
        """
        db = self.db
        key = cache_key(symbol, timeframe)

        async def _read() -> tuple | None:
            cursor = await db.execute(
                f"SELECT data, encoding, timestamp FROM {TABLE_NAME} WHERE id = ?",
                (key,),
            )
            return await cursor.fetchone()

        row = await self._guard(_read(), timeout, "get")
        if row is None:
            logger.debug("cache_miss", key=key)
            return None

        blob, encoding, written_at = row
        age_ms = self._clock() - written_at
        if age_ms > self._ttl_ms:
            await self._guard(self._delete(key), timeout, "get")
            logger.debug("cache_expired", key=key, age_ms=age_ms)
            return None

        logger.debug("cache_hit", key=key, age_ms=age_ms)
        return decode_series(blob, encoding)

    async def sweep(self, timeout: float | None = None) -> int:
        """Delete every entry older than the TTL. Returns the number removed."""
        db = self.db
        cutoff = self._clock() - self._ttl_ms

        async def _purge() -> int:
            cursor = await db.execute(
                f"DELETE FROM {TABLE_NAME} WHERE timestamp < ?", (cutoff,)
            )
            await db.commit()
            return cursor.rowcount

        removed = await self._guard(_purge(), timeout, "sweep")
        logger.info("cache_swept", removed=removed, cutoff_ms=cutoff)
        return removed

    async def count(self, timeout: float | None = None) -> int:
        """Return the number of stored entries, expired or not."""
        db = self.db

        async def _count() -> int:
            cursor = await db.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}")
            return (await cursor.fetchone())[0]

        return await self._guard(_count(), timeout, "count")

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    async def _delete(self, key: str) -> None:
        db = self.db
        await db.execute(f"DELETE FROM {TABLE_NAME} WHERE id = ?", (key,))
        await db.commit()

    async def _guard(
        self, operation: Awaitable[T], timeout: float | None, name: str
    ) -> T:
        """Await a store operation under a timeout, translating failures to StorageError."""
        if timeout is None:
            timeout = self._default_timeout
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("cache_operation_timeout", operation=name, timeout=timeout)
            raise StorageError(f"Cache {name} timed out after {timeout}s") from e
        except (aiosqlite.Error, OSError) as e:
            logger.warning("cache_operation_failed", operation=name, error=str(e))
            raise StorageError(f"Cache {name} failed: {e}") from e
