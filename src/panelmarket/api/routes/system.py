"""Health and rate limiter status endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from panelmarket.ratelimit import RateLimiter

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    cache = getattr(request.app.state, "cache", None)
    return JSONResponse(
        content={
            "status": "ok",
            "cache_initialized": bool(cache is not None and cache.is_initialized),
        }
    )


@router.get("/limits")
async def get_limits(request: Request) -> JSONResponse:
    """Remaining permits and time to reset for every registered limiter."""
    limiter: RateLimiter = request.app.state.rate_limiter
    return JSONResponse(
        content=[asdict(limiter.status(key)) for key in limiter.keys()]
    )
