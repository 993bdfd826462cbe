# /api/visitorAPI.py
# CineStream - Best-effort visitor logging (page views, visit end beacons)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from _logging import log

from ._deps import ctx_of, ip_of

__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["visitors"])


async def _body(request: Request) -> dict[str, Any]:
    # sendBeacon may post nothing, or text/plain
    raw = await request.body()
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        log("Visitor log body is not JSON, treating as empty", level="DEBUG", module="VISITORS")
        return {}
    return data if isinstance(data, dict) else {}


@router.post("/visitor-log")
async def api_visitor_log(request: Request) -> JSONResponse:
    """Always answers 200; logging never breaks page loads."""
    ctx = ctx_of(request)
    try:
        if not await run_in_threadpool(ctx.settings.visitor_logging):
            return JSONResponse({"message": "Logging is disabled"})
        body = await _body(request)
        outcome = await run_in_threadpool(ctx.visitors.record, body, ip_of(request))
    except Exception as e:
        log(f"Visitor log failed: {e}", level="WARN", module="VISITORS")
        return JSONResponse({"message": "Processed"})
    if outcome == "finalized":
        return JSONResponse({"message": "Visit finalized"})
    return JSONResponse({"message": "Visit logged"})
