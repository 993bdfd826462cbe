# /api/metaAPI.py
# CineStream - TMDb passthrough: search, recommendations, trailers, shows and seasons
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from fastapi import APIRouter, Path as FPath, Query, Request
from fastapi.responses import JSONResponse

from _logging import log
from cs_platform.errors import NotFound, UpstreamFailure, ValidationError

from ._deps import ctx_of, ok, rate_limit
from .videoAPI import embed_for, embed_params, pick_source

__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["metadata"])


def _media_type(v: str | None) -> str:
    mt = (v or "").strip().lower()
    if mt not in ("movie", "tv"):
        raise ValidationError("Invalid mediaType")
    return mt


@router.get("/search")
def api_search(request: Request, query: str = Query(""), page: int = Query(1, ge=1)) -> JSONResponse:
    rate_limit(request, "search")
    return ok(ctx_of(request).tmdb.search(query, page))


@router.get("/tmdb/recommendations")
def api_recommendations(
    request: Request,
    mediaType: str | None = Query(None),
    id: int = Query(0),
    page: int = Query(1, ge=1),
) -> JSONResponse:
    """Empty results, never an error; the UI renders an empty rail."""
    if mediaType not in ("movie", "tv") or id <= 0:
        return ok({"results": []})
    try:
        return ok(ctx_of(request).tmdb.recommendations(mediaType, id, page))
    except UpstreamFailure as e:
        log(f"Recommendations failed for {mediaType} {id}: {e}", level="WARN", module="TMDB")
        return ok({"results": []})


@router.get("/trailer/{media_id}")
def api_trailer(request: Request, media_id: int = FPath(...), mediaType: str | None = Query(None)) -> JSONResponse:
    ctx = ctx_of(request)
    key = ctx.tmdb.trailer_key(_media_type(mediaType), media_id)
    if not key:
        raise NotFound("No trailer found")
    if ctx.youtube.is_age_restricted(key):
        return ok({
            "trailerKey": None,
            "ageRestricted": True,
            "message": "Trailer is age-restricted and cannot be embedded",
        })
    return ok({"trailerKey": key})


@router.get("/tv/{tv_id}")
def api_tv(
    request: Request,
    tv_id: int = FPath(...),
    season: int = Query(1, ge=1),
    episode: int = Query(1, ge=1),
    source: str | None = Query(None),
) -> JSONResponse:
    show = ctx_of(request).tmdb.tv(tv_id)
    if not show:
        raise NotFound("TV show not found")
    embed = embed_for(pick_source(request, source), embed_params(request, "tv", tv_id, season, episode))
    return ok({
        "id": show.get("id"),
        "name": show.get("name"),
        "posterPath": show.get("poster_path"),
        "overview": show.get("overview"),
        "videoUrl": embed["embedUrl"],
        "currentSeason": season,
        "currentEpisode": episode,
    })


@router.get("/tv/{tv_id}/seasons")
def api_tv_seasons(request: Request, tv_id: int = FPath(...)) -> JSONResponse:
    if tv_id <= 0:
        raise ValidationError("Invalid TV Show ID")
    seasons = ctx_of(request).tmdb.seasons(tv_id)
    if seasons is None:
        raise NotFound("TV Show not found")
    return ok({"seasons": seasons})
