# /api/healthAPI.py
# CineStream - Liveness probe
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ._deps import NO_STORE, ctx_of

__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def api_health(request: Request) -> JSONResponse:
    ctx = ctx_of(request)
    db_ok = ctx.store.ping()
    body = {
        "ok": db_ok,
        "store": ctx.store.backend,
        "queues": {
            "playtime": ctx.playtime.pending(),
            "visitors": ctx.visitors.batch.pending(),
        },
        "rate_limit_keys": len(ctx.limiter),
        "relay_rooms": len(ctx.relay.rooms()),
    }
    return JSONResponse(body, status_code=200 if db_ok else 503, headers=NO_STORE)
