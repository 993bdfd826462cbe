# /api/_deps.py
# CineStream - Request helpers shared by the API routers
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from cs_platform.errors import Forbidden, RateLimited, Unauthorized
from services import AppContext
from services.visitors import client_ip

NO_STORE = {"Cache-Control": "no-store"}


def ctx_of(request: Request) -> AppContext:
    return request.app.state.ctx


def ip_of(request: Request) -> str:
    fallback = request.client.host if request.client else ""
    return client_ip(request.headers, fallback)


def cookie_name(ctx: AppContext) -> str:
    return str(ctx.section("auth").get("cookie_name") or "cs_session")


def session_token(request: Request) -> str | None:
    ctx = ctx_of(request)
    tok = request.cookies.get(cookie_name(ctx))
    if tok:
        return tok
    auth = str(request.headers.get("authorization") or "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def optional_user(request: Request) -> dict[str, Any] | None:
    return ctx_of(request).users.session_user(session_token(request))


def current_user(request: Request) -> dict[str, Any]:
    user = optional_user(request)
    if not user:
        raise Unauthorized()
    return user


def require_admin(request: Request) -> dict[str, Any]:
    user = current_user(request)
    if user.get("role") != "admin":
        raise Forbidden("Admin access required")
    return user


def rate_limit(request: Request, preset: str, identifier: str | None = None) -> None:
    ctx = ctx_of(request)
    ident = identifier or ip_of(request) or "anonymous"
    if not ctx.limiter.allow_preset(preset, ident):
        retry = ctx.limiter.retry_after_seconds(f"{preset}:{ident}")
        raise RateLimited(f"Too many requests. Try again in {retry}s", retry_after=retry)


def ok(data: Any = None, *, status_code: int = 200, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(jsonable_encoder(data), status_code=status_code, headers=headers)


def _secure(request: Request) -> bool:
    xfp = str(request.headers.get("x-forwarded-proto") or request.headers.get("x-forwarded-protocol") or "").lower()
    return (str(request.url.scheme).lower() == "https") or (xfp == "https")


def set_session_cookie(resp: Response, request: Request, token: str, exp: datetime) -> None:
    ctx = ctx_of(request)
    if exp.tzinfo is None:
        exp = exp.replace(tzinfo=timezone.utc)
    max_age = int((exp - datetime.now(timezone.utc)).total_seconds())
    resp.set_cookie(
        cookie_name(ctx),
        token,
        max_age=max(1, max_age),
        path="/",
        httponly=True,
        samesite="lax",
        secure=_secure(request),
    )


def del_session_cookie(resp: Response, request: Request) -> None:
    resp.delete_cookie(cookie_name(ctx_of(request)), path="/", samesite="lax", secure=_secure(request))
