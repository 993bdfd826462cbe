# /api/adminAPI.py
# CineStream - Admin: settings, users, visitor logs
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from _logging import log
from cs_platform.errors import NotFound, ValidationError
from services.users import public_user

from ._deps import NO_STORE, ctx_of, ok, require_admin

__all__ = ["router"]

router = APIRouter(prefix="/api/admin", tags=["admin"])


class RoleIn(BaseModel):
    userId: str | None = None
    role: str | None = None


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="ADMIN")


# settings
@router.get("/maintenance")
def api_get_settings(request: Request) -> JSONResponse:
    """Public: the UI reads maintenance flags before login."""
    return ok(ctx_of(request).settings.get(), headers=NO_STORE)


@router.post("/maintenance")
def api_set_settings(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    admin = require_admin(request)
    out = ctx_of(request).settings.update(payload)
    _log(f"Settings changed by {admin['_id']}")
    return ok(out)


# users
@router.get("/users")
def api_users(request: Request) -> JSONResponse:
    require_admin(request)
    return ok(ctx_of(request).users.list())


@router.put("/users")
def api_user_role(request: Request, payload: RoleIn = Body(...)) -> JSONResponse:
    require_admin(request)
    user_id = payload.userId or ""
    role = payload.role or ""
    if not user_id or role not in ("user", "admin"):
        raise ValidationError("Invalid input")
    return ok(public_user(ctx_of(request).users.set_role(user_id, role)))


@router.delete("/users")
def api_user_delete(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    admin = require_admin(request)
    user_id = str(payload.get("userId") or "")
    if not user_id:
        raise ValidationError("User ID required")
    if user_id == admin["_id"]:
        raise ValidationError("Admins cannot delete their own account here")
    ctx_of(request).users.delete(user_id)
    return ok({"ok": True, "message": "User deleted"})


@router.post("/set-user-source")
def api_set_user_source(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    require_admin(request)
    ctx = ctx_of(request)
    source = payload.get("source")
    if not source or not (payload.get("email") or payload.get("userId")):
        raise ValidationError("Missing email or source")
    if payload.get("userId"):
        user = ctx.users.require(str(payload["userId"]))
    else:
        user = ctx.users.by_email(payload.get("email"))
        if user is None:
            raise NotFound("User not found")
    state = ctx.sources.admin_set(user["_id"], source)
    return ok({"user": public_user(ctx.users.get(user["_id"])), **state.to_dict()})


# visitor logs
@router.get("/logging")
def api_get_logging(request: Request) -> JSONResponse:
    require_admin(request)
    return ok({"isLoggingEnabled": ctx_of(request).settings.visitor_logging()})


@router.post("/logging")
def api_set_logging(request: Request, payload: dict[str, Any] = Body(...)) -> JSONResponse:
    require_admin(request)
    enabled = payload.get("isLoggingEnabled")
    if not isinstance(enabled, bool):
        raise ValidationError("Invalid logging state")
    ctx_of(request).settings.update({"isVisitorLoggingEnabled": enabled})
    return ok({
        "isLoggingEnabled": enabled,
        "message": f"Logging has been {'enabled' if enabled else 'disabled'}",
    })


@router.get("/visitor-logs")
def api_visitor_logs(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=500),
) -> JSONResponse:
    require_admin(request)
    return ok(ctx_of(request).visitors.page(page, limit))


@router.delete("/visitor-logs")
def api_visitor_logs_delete(request: Request) -> JSONResponse:
    admin = require_admin(request)
    n = ctx_of(request).visitors.delete_all()
    _log(f"Visitor logs cleared by {admin['_id']} ({n} removed)")
    return ok({"ok": True, "deletedCount": n})
