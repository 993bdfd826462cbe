# /cinestream.py
# CineStream - Movie & TV streaming backend
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import asyncio
import os
import time
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from _logging import log, set_debug
from api import register as register_api
from api._deps import optional_user
from cs_platform.config_base import load_config
from cs_platform.errors import AppError, ServiceUnavailable, error_payload
from cs_platform.store import DocumentStore
from services import AppContext, build_context

__all__ = ["create_app", "main"]

# Reachable while the site is in maintenance mode
MAINTENANCE_OPEN = ("/api/auth/", "/api/admin/", "/api/health", "/api/visitor-log", "/ws/")

# Housekeeping cadence for expired sessions and old visitor logs
PRUNE_INTERVAL_S = 6 * 3600


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="APP")


def _startup(ctx: AppContext) -> None:
    ctx.store.ensure_indexes(visitor_ttl_days=ctx.visitors.ttl_days)
    auth = ctx.section("auth")
    ctx.users.seed_admin(
        str(auth.get("admin_email") or ""),
        str(auth.get("admin_password") or ""),
        name=str(auth.get("admin_name") or "Admin"),
    )
    ctx.limiter.start_sweeper(float(ctx.section("rate_limits").get("sweep_seconds") or 60))
    ctx.settings.get(fresh=True)


def _housekeeping(ctx: AppContext) -> None:
    sessions = ctx.users.prune_sessions()
    visits = ctx.visitors.prune()
    if sessions or visits:
        _log(f"Pruned {sessions} expired session(s), {visits} old visitor log(s)", level="DEBUG")


async def _prune_loop(ctx: AppContext, interval: float = PRUNE_INTERVAL_S) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(_housekeeping, ctx)
        except Exception as e:
            # keep the loop alive; the next round retries
            _log(f"Housekeeping failed: {e!r}", level="WARN")


def create_app(cfg: dict[str, Any] | None = None, *, store: DocumentStore | None = None, **ctx_kw: Any) -> FastAPI:
    cfg = cfg if cfg is not None else load_config()
    rt = dict(cfg.get("runtime") or {})
    log.configure(cfg)
    set_debug(True if rt.get("debug") else None)

    ctx = build_context(cfg, store=store, **ctx_kw)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        await run_in_threadpool(_startup, ctx)
        pruner = asyncio.create_task(_prune_loop(ctx))
        _log("CineStream started", level="SUCCESS")
        try:
            yield
        finally:
            pruner.cancel()
            await run_in_threadpool(ctx.shutdown)
            _log("CineStream stopped")

    app = FastAPI(title="CineStream", lifespan=_lifespan)
    app.state.ctx = ctx

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        headers = {"Retry-After": str(exc.extra["retry_after"])} if exc.extra.get("retry_after") else None
        if exc.status_code >= 500:
            _log(f"{request.method} {request.url.path} failed: {exc}", level="ERROR")
        return JSONResponse(error_payload(exc), status_code=exc.status_code, headers=headers)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        _log(f"{request.method} {request.url.path} crashed: {exc!r}", level="ERROR")
        return JSONResponse({"ok": False, "error": "Internal server error"}, status_code=500)

    @app.middleware("http")
    async def maintenance_gate(request: Request, call_next):
        path = request.url.path
        if path.startswith("/api/") and not path.startswith(MAINTENANCE_OPEN):
            if await run_in_threadpool(ctx.settings.maintenance):
                user = await run_in_threadpool(optional_user, request)
                if not user or user.get("role") != "admin":
                    exc = ServiceUnavailable("CineStream is under maintenance")
                    return JSONResponse(error_payload(exc), status_code=exc.status_code)
        return await call_next(request)

    @app.middleware("http")
    async def conditional_access_logger(request: Request, call_next):
        t0 = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = getattr(response, "status_code", 0) or 0
            return response
        finally:
            dt_ms = int((time.time() - t0) * 1000)
            slow = dt_ms >= int(rt.get("slow_request_ms") or 1500)
            if not rt.get("debug_http") and (status >= 500 or slow or (rt.get("debug") and status >= 400)):
                client = request.client
                host = f"{client.host}:{client.port}" if client else "-"
                path_qs = request.url.path + (f"?{request.url.query}" if request.url.query else "")
                _log(f'{host} - "{request.method} {path_qs}" {status} ({dt_ms} ms)', level="HTTP")

    register_api(app)
    return app


# Entry point
def main(host: str = "0.0.0.0", port: int | None = None) -> None:
    cfg = load_config()
    rt = cfg.get("runtime") or {}
    port = port or int(os.getenv("PORT") or 8787)
    debug = bool(rt.get("debug"))
    debug_http = bool(rt.get("debug_http"))
    _log(f"CineStream listening on http://{host}:{port}")

    uvicorn.run(
        "cinestream:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=("debug" if debug else "warning"),
        access_log=debug_http,
    )


if __name__ == "__main__":
    main()
