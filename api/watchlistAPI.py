# /api/watchlistAPI.py
# CineStream - Watchlist entries and folders
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Path as FPath, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cs_platform.errors import ValidationError

from ._deps import ctx_of, current_user, ok

__all__ = ["router", "folders_router"]

router = APIRouter(prefix="/api/watchlist", tags=["watchlist"])
folders_router = APIRouter(prefix="/api/watchlist-folders", tags=["watchlist"])


class FolderIn(BaseModel):
    name: str | None = None
    description: str | None = None
    color: str | None = None


def _csv(v: str | None) -> list[str]:
    return [x.strip() for x in (v or "").split(",") if x.strip()]


@router.get("")
def api_watchlist(request: Request, folderId: str | None = Query(None)) -> JSONResponse:
    user = current_user(request)
    return ok(ctx_of(request).watchlist.list(user["_id"], folderId))


@router.post("")
def api_watchlist_add(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    user = current_user(request)
    wl = ctx_of(request).watchlist
    wl.add(user["_id"], payload)
    return ok(wl.list(user["_id"]))


@router.delete("")
def api_watchlist_remove(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    user = current_user(request)
    removed = ctx_of(request).watchlist.remove(user["_id"], payload.get("mediaId"), payload.get("mediaType"))
    return ok({"success": True, "removed": removed})


@router.patch("/move")
def api_watchlist_move(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    user = current_user(request)
    item = ctx_of(request).watchlist.move(
        user["_id"], payload.get("mediaId"), payload.get("mediaType"), payload.get("folderId") or None
    )
    return ok(item)


@router.get("/status")
def api_watchlist_status(
    request: Request,
    mediaId: str | None = Query(None),
    mediaType: str | None = Query(None),
    mediaIds: str | None = Query(None),
    mediaTypes: str | None = Query(None),
) -> JSONResponse:
    """Single lookup (mediaId/mediaType) or bulk lookup (comma separated mediaIds/mediaTypes)."""
    user = current_user(request)
    wl = ctx_of(request).watchlist
    if mediaIds is not None or mediaTypes is not None:
        return ok(wl.status_many(user["_id"], _csv(mediaIds), _csv(mediaTypes)))
    if not mediaId or not mediaType:
        raise ValidationError("Missing mediaId or mediaType")
    return ok({"isInWatchlist": wl.status(user["_id"], mediaId, mediaType)})


# folders
@folders_router.get("")
def api_folders(request: Request) -> JSONResponse:
    user = current_user(request)
    return ok(ctx_of(request).watchlist.folders(user["_id"]))


@folders_router.post("")
def api_folder_create(request: Request, payload: FolderIn = Body(...)) -> JSONResponse:
    user = current_user(request)
    folder = ctx_of(request).watchlist.create_folder(user["_id"], payload.name, payload.description, payload.color)
    return ok(folder, status_code=201)


@folders_router.patch("/{folder_id}")
def api_folder_update(request: Request, folder_id: str = FPath(...), payload: FolderIn = Body(...)) -> JSONResponse:
    user = current_user(request)
    return ok(ctx_of(request).watchlist.update_folder(user["_id"], folder_id, payload.model_dump(exclude_none=True)))


@folders_router.delete("/{folder_id}")
def api_folder_delete(request: Request, folder_id: str = FPath(...)) -> JSONResponse:
    user = current_user(request)
    detached = ctx_of(request).watchlist.delete_folder(user["_id"], folder_id)
    return ok({"success": True, "detached": detached})
