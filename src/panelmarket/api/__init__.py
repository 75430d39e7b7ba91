"""HTTP API for chart data, limiter status, and comic data passthrough."""

from panelmarket.api.app import create_app

__all__ = ["create_app"]
