"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Offline time-series cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    db_path: str = "data/market_chart_cache.db"
    ttl_hours: int = 24
    sweep_interval_seconds: int = 3600
    compress_payload: bool = True  # zlib pass before storage
    operation_timeout: float = 5.0  # seconds per store operation


class ChartSettings(BaseSettings):
    """Chart compression behaviour.

    aggregation="mean" averages open/close across a bucket (legacy charts);
    "candle" uses first open and last close.
    bucketing="count" groups a fixed number of points per bucket;
    "interval" groups by wall-clock interval boundaries.
    """

    model_config = SettingsConfigDict(env_prefix="CHART_")

    aggregation: Literal["mean", "candle"] = "mean"
    bucketing: Literal["count", "interval"] = "count"


class MarvelSettings(BaseSettings):
    """Marvel developer API connection settings."""

    model_config = SettingsConfigDict(env_prefix="MARVEL_")

    public_key: SecretStr = SecretStr("")
    private_key: SecretStr = SecretStr("")
    base_url: str = "https://gateway.marvel.com/v1/public"
    rate_limit_capacity: int = 3000
    rate_limit_window_ms: int = 24 * 60 * 60 * 1000  # per day
    timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0


class IsbndbSettings(BaseSettings):
    """ISBNdb API connection settings."""

    model_config = SettingsConfigDict(env_prefix="ISBNDB_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://api2.isbndb.com"
    rate_limit_capacity: int = 2
    rate_limit_window_ms: int = 1000  # per second
    timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 0.5


class ComicVineSettings(BaseSettings):
    """ComicVine API connection settings."""

    model_config = SettingsConfigDict(env_prefix="COMICVINE_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://comicvine.gamespot.com/api"
    rate_limit_capacity: int = 200
    rate_limit_window_ms: int = 60 * 60 * 1000  # per hour
    timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    user_agent: str = "PanelMarket/1.0 (Comic Analysis Platform)"


class ServerSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    cache: CacheSettings = CacheSettings()
    chart: ChartSettings = ChartSettings()
    marvel: MarvelSettings = MarvelSettings()
    isbndb: IsbndbSettings = IsbndbSettings()
    comicvine: ComicVineSettings = ComicVineSettings()
    server: ServerSettings = ServerSettings()
