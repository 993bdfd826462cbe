# /api/authAPI.py
# CineStream - Accounts, sessions and per-user preferences
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import base64
from datetime import datetime, timezone

from fastapi import APIRouter, Body, File, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from _logging import log
from cs_platform.errors import Unauthorized, ValidationError
from services.users import MAX_IMAGE_CHARS, public_user

from ._deps import (
    NO_STORE,
    ctx_of,
    current_user,
    del_session_cookie,
    ip_of,
    ok,
    optional_user,
    rate_limit,
    session_token,
    set_session_cookie,
)

__all__ = ["router", "user_router"]

router = APIRouter(prefix="/api/auth", tags=["auth"])
user_router = APIRouter(prefix="/api/user", tags=["user"])

IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class SignupIn(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginIn(BaseModel):
    email: str | None = None
    password: str | None = None


class SourceIn(BaseModel):
    source: str | int | None = None
    at: datetime | None = None
    explicit: bool = True


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="AUTH")


@router.post("/signup")
def api_signup(request: Request, payload: SignupIn = Body(...)) -> JSONResponse:
    rate_limit(request, "auth")
    name = (payload.name or "").strip()
    email = (payload.email or "").strip()
    password = payload.password or ""
    if not name or not email or not password:
        raise ValidationError("Missing required fields")
    user = ctx_of(request).users.create(email, password, name=name)
    return ok({"ok": True, "user": public_user(user)}, status_code=201)


@router.post("/login")
def api_login(request: Request, payload: LoginIn = Body(...)) -> JSONResponse:
    rate_limit(request, "auth")
    ctx = ctx_of(request)
    user = ctx.users.authenticate(payload.email, payload.password or "")
    if user is None:
        _log(f"Failed login from {ip_of(request)}", level="WARN")
        raise Unauthorized("Invalid credentials")
    token, exp = ctx.users.issue_session(user["_id"], ip=ip_of(request), ua=request.headers.get("user-agent", ""))
    resp = ok({"ok": True, "user": public_user(user), "expires_at": exp}, headers=NO_STORE)
    set_session_cookie(resp, request, token, exp)
    return resp


@router.post("/logout")
def api_logout(request: Request) -> JSONResponse:
    ctx_of(request).users.drop_session(session_token(request))
    resp = JSONResponse({"ok": True}, headers=NO_STORE)
    del_session_cookie(resp, request)
    return resp


@router.get("/session")
def api_session(request: Request) -> JSONResponse:
    return ok({"user": public_user(optional_user(request))}, headers=NO_STORE)


# per-user
@user_router.get("/source")
def api_get_source(request: Request) -> JSONResponse:
    user = current_user(request)
    state = ctx_of(request).sources.resolve(user["_id"])
    return ok(state.to_dict(), headers=NO_STORE)


@user_router.post("/source")
def api_set_source(request: Request, payload: SourceIn = Body(...)) -> JSONResponse:
    """Explicit by default; the player posts explicit=false hints with the time it observed the source."""
    user = current_user(request)
    at = payload.at
    if at is not None and at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    state = ctx_of(request).sources.update(user["_id"], payload.source, at=at, explicit=payload.explicit)
    return ok({"ok": True, **state.to_dict()})


@user_router.post("/upload-profile-image")
def api_upload_profile_image(request: Request, file: UploadFile = File(...)) -> JSONResponse:
    user = current_user(request)
    ctype = (file.content_type or "").lower()
    if ctype not in IMAGE_TYPES:
        raise ValidationError("Unsupported image type")
    raw = file.file.read()
    data_url = f"data:{ctype};base64,{base64.b64encode(raw).decode('ascii')}"
    if len(data_url) > MAX_IMAGE_CHARS:
        raise ValidationError("Image too large", status_code=413)
    ctx_of(request).users.set_image(user["_id"], data_url)
    return ok({"ok": True, "image": data_url})
