"""Passthrough endpoints for the rate-limited comic data APIs.

A client is None on app.state when its API key is not configured; those
routes answer 503.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

router = APIRouter()


def _client(request: Request, name: str) -> Any:
    return getattr(request.app.state, name, None)


def _not_configured(service: str) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "not_configured", "detail": f"{service} API key not configured"},
    )


@router.get("/marvel/characters")
async def search_characters(request: Request, name: str = Query(..., min_length=1)) -> JSONResponse:
    client = _client(request, "marvel_client")
    if client is None:
        return _not_configured("marvel")
    return JSONResponse(content=await client.search_characters(name))


@router.get("/marvel/characters/{character_id}")
async def get_character(request: Request, character_id: int) -> JSONResponse:
    client = _client(request, "marvel_client")
    if client is None:
        return _not_configured("marvel")
    return JSONResponse(content=await client.get_character(character_id))


@router.get("/marvel/creators")
async def search_creators(request: Request, name: str = Query(..., min_length=1)) -> JSONResponse:
    client = _client(request, "marvel_client")
    if client is None:
        return _not_configured("marvel")
    return JSONResponse(content=await client.search_creators(name))


@router.get("/marvel/creators/{creator_id}")
async def get_creator(request: Request, creator_id: int) -> JSONResponse:
    client = _client(request, "marvel_client")
    if client is None:
        return _not_configured("marvel")
    return JSONResponse(content=await client.get_creator(creator_id))


@router.get("/isbndb/authors/{name}")
async def get_author(request: Request, name: str) -> JSONResponse:
    client = _client(request, "isbndb_client")
    if client is None:
        return _not_configured("isbndb")
    biography = await client.get_author(name)
    if biography is None:
        return JSONResponse(
            status_code=404,
            content={"error": "not_found", "detail": f"No ISBNdb author '{name}'"},
        )
    return JSONResponse(content=asdict(biography))


@router.get("/comicvine/issues/{issue_id}")
async def get_issue(request: Request, issue_id: int) -> JSONResponse:
    client = _client(request, "comicvine_client")
    if client is None:
        return _not_configured("comicvine")
    return JSONResponse(content=await client.get_issue(issue_id))
