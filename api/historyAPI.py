# /api/historyAPI.py
# CineStream - Watch history (resume points) and batched playtime heartbeats
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Path as FPath, Query, Request
from fastapi.responses import JSONResponse

from _logging import log
from services.playtime import PlaytimeUpdate

from ._deps import ctx_of, current_user, ok

__all__ = ["router", "playtime_router"]

router = APIRouter(prefix="/api/watch-history", tags=["history"])
playtime_router = APIRouter(prefix="/api/playtime", tags=["history"])


@router.get("")
def api_history(request: Request, limit: int = Query(10, ge=1, le=100)) -> JSONResponse:
    user = current_user(request)
    return ok(ctx_of(request).history.list(user["_id"], limit))


@router.post("")
def api_history_record(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    user = current_user(request)
    return ok(ctx_of(request).history.record(user["_id"], payload))


@router.delete("/{entry_id}")
def api_history_delete(request: Request, entry_id: str = FPath(...)) -> JSONResponse:
    user = current_user(request)
    ctx_of(request).history.delete(user["_id"], entry_id)
    return ok({"ok": True, "message": "History item deleted"})


# playtime
@playtime_router.post("")
def api_playtime(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    user = current_user(request)
    writer = ctx_of(request).playtime
    writer.enqueue(PlaytimeUpdate.from_payload(user["_id"], payload))
    return ok({"ok": True, "queued": writer.pending()})


@playtime_router.post("/flush")
def api_playtime_flush(request: Request) -> JSONResponse:
    """Page hide/unload: drain in the background, answer right away."""
    current_user(request)
    ctx = ctx_of(request)
    timeout_s = float(ctx.section("playtime").get("unload_timeout_s") or 3.0)

    def _done(success: bool) -> None:
        if not success:
            log(f"Unload flush incomplete, {ctx.playtime.pending()} update(s) left queued", level="WARN", module="PLAYTIME")

    ctx.playtime.flush_async(timeout_s=timeout_s, on_done=_done)
    return ok({"ok": True, "accepted": True}, status_code=202)


@playtime_router.get("/pending")
def api_playtime_pending(request: Request) -> JSONResponse:
    current_user(request)
    writer = ctx_of(request).playtime
    err = writer.last_error
    return ok({"pending": writer.pending(), "written": writer.written, "last_error": str(err) if err else None})
