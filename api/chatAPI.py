# /api/chatAPI.py
# CineStream - Site chatbot and the in-player video assistant
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from cs_platform.errors import ServiceUnavailable

from ._deps import ctx_of, ok, rate_limit

__all__ = ["router"]

router = APIRouter(prefix="/api", tags=["chat"])


def _guard(request: Request) -> None:
    if ctx_of(request).settings.chatbot_maintenance():
        raise ServiceUnavailable("The assistant is under maintenance")
    rate_limit(request, "chat")


@router.post("/chat")
def api_chat(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    _guard(request)
    reply = ctx_of(request).assistant.chat(payload.get("messages"), payload.get("currentMessage"))
    return ok({"response": reply})


@router.post("/video-ai")
def api_video_ai(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    _guard(request)
    reply = ctx_of(request).assistant.video_chat(
        payload.get("messages"), payload.get("currentMessage"), payload.get("mediaContext")
    )
    return ok({"response": reply})
