# /api/videoAPI.py
# CineStream - Embed player URLs and source capabilities
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Path as FPath, Query, Request
from fastapi.responses import JSONResponse

from cs_platform.errors import NotFound, ValidationError
from providers.embeds import EmbedParams, embed_manifests, get_provider

from ._deps import ctx_of, ok, optional_user, rate_limit

__all__ = ["router", "pick_source", "embed_for", "embed_params"]

router = APIRouter(prefix="/api", tags=["video"])


def pick_source(request: Request, requested: Any = None) -> str:
    """Explicit request, else the viewer's resolved source, else the site default."""
    if requested not in (None, ""):
        return get_provider(requested).name
    ctx = ctx_of(request)
    user = optional_user(request)
    if user:
        state = ctx.sources.resolve(user["_id"])
        if state.source:
            return state.source
    return str(ctx.settings.get().get("videoSource") or ctx.section("embeds").get("default_source") or "videasy")


def embed_for(source: str, params: EmbedParams) -> dict[str, Any]:
    return get_provider(source).describe(params)


def embed_params(request: Request, media_type: str, media_id: Any, season: Any = None, episode: Any = None, start_at: Any = 0) -> EmbedParams:
    color = str(ctx_of(request).section("embeds").get("color") or "") or None
    return EmbedParams.build(media_type, media_id, season, episode, start_at, color)


@router.get("/video/movie/{movie_id}")
def api_video_movie(
    request: Request,
    movie_id: int = FPath(...),
    source: str | None = Query(None),
    startAt: int = Query(0, ge=0),
) -> JSONResponse:
    rate_limit(request, "video")
    ctx = ctx_of(request)
    movie = ctx.tmdb.movie(movie_id)
    if not movie:
        raise NotFound("Movie not found")
    embed = embed_for(pick_source(request, source), embed_params(request, "movie", movie_id, start_at=startAt))
    return ok({
        "id": movie.get("id"),
        "title": movie.get("title"),
        "posterPath": movie.get("poster_path"),
        "overview": movie.get("overview"),
        "videoUrl": embed["embedUrl"],
        "source": embed["source"],
        "features": embed["features"],
    })


@router.get("/video/tv/{tv_id}")
def api_video_tv(
    request: Request,
    tv_id: int = FPath(...),
    season: int = Query(1, ge=1),
    episode: int = Query(1, ge=1),
    source: str | None = Query(None),
    startAt: int = Query(0, ge=0),
) -> JSONResponse:
    rate_limit(request, "video")
    ctx = ctx_of(request)
    show = ctx.tmdb.tv(tv_id)
    if not show:
        raise NotFound("TV show not found")
    embed = embed_for(pick_source(request, source), embed_params(request, "tv", tv_id, season, episode, startAt))
    return ok({
        "id": show.get("id"),
        "name": show.get("name"),
        "posterPath": show.get("poster_path"),
        "overview": show.get("overview"),
        "videoUrl": embed["embedUrl"],
        "source": embed["source"],
        "features": embed["features"],
        "currentSeason": season,
        "currentEpisode": episode,
    })


@router.post("/video-proxy")
def api_video_proxy(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    """Embed URL plus capabilities for one source, without a TMDb round trip."""
    rate_limit(request, "video")
    if not payload.get("source") or not payload.get("tmdbId"):
        raise ValidationError("Missing required parameters")
    params = embed_params(
        request,
        payload.get("mediaType") or "movie",
        payload.get("tmdbId"),
        payload.get("season"),
        payload.get("episode"),
        payload.get("startAt") or 0,
    )
    embed = embed_for(pick_source(request, payload.get("source")), params)
    return ok({
        "url": embed["embedUrl"],
        "metadata": embed,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@router.get("/video/sources")
def api_video_sources(request: Request) -> JSONResponse:
    return ok({"default": pick_source(request), "sources": embed_manifests()})
