"""Chart series endpoint."""

from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from panelmarket.chart.service import ChartDataService

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to strings for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


@router.get("/chart/{symbol}")
async def get_chart(
    request: Request, symbol: str, timeframe: str = Query("1D")
) -> JSONResponse:
    """Downsampled OHLCV series for a symbol; served from cache when fresh."""
    service: ChartDataService = request.app.state.chart_service
    result = await service.get_chart(symbol, timeframe)

    return JSONResponse(
        content={
            "symbol": result.symbol,
            "timeframe": result.timeframe.value,
            "from_cache": result.from_cache,
            "cached": result.cached,
            "points": _decimal_to_str([asdict(item) for item in result.series]),
        }
    )
