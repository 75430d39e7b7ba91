"""Durable local cache for compressed chart series with 24h expiry."""

from panelmarket.cache.offline import OfflineCache, cache_key
from panelmarket.cache.sweeper import CacheSweeper

__all__ = [
    "CacheSweeper",
    "OfflineCache",
    "cache_key",
]
