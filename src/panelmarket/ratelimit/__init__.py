"""Per-key fixed-window admission control for outbound API calls."""

from panelmarket.ratelimit.limiter import LimiterStatus, RateLimiter

__all__ = [
    "LimiterStatus",
    "RateLimiter",
]
