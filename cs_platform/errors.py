# cs_platform/errors.py
# CineStream - Error taxonomy shared by services and routes
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

__all__ = [
    "AppError",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "ValidationError",
    "Conflict",
    "RateLimited",
    "UpstreamFailure",
    "PersistenceFailure",
    "ServiceUnavailable",
    "error_payload",
]


class AppError(RuntimeError):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None, **extra: Any) -> None:
        super().__init__(message or self.default_message)
        if status_code is not None:
            self.status_code = int(status_code)
        self.extra: dict[str, Any] = dict(extra)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.default_message


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(AppError):
    status_code = 409
    default_message = "Already exists"


class RateLimited(AppError):
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, message: str | None = None, *, retry_after: int = 0, **extra: Any) -> None:
        super().__init__(message, retry_after=max(0, int(retry_after)), **extra)
        self.retry_after = max(0, int(retry_after))


class UpstreamFailure(AppError):
    """An external API (TMDb, chat, embed host) failed.

    Quota and throttling map to 429, unavailable models/endpoints to 503,
    anything else to 502.
    """

    status_code = 502
    default_message = "Upstream service failed"

    @classmethod
    def quota(cls, message: str = "Upstream quota exceeded") -> "UpstreamFailure":
        return cls(message, status_code=429)

    @classmethod
    def unavailable(cls, message: str = "Upstream service unavailable") -> "UpstreamFailure":
        return cls(message, status_code=503)


class PersistenceFailure(AppError):
    status_code = 500
    default_message = "Failed to persist"


class ServiceUnavailable(AppError):
    status_code = 503
    default_message = "Service temporarily unavailable"


def error_payload(exc: AppError) -> dict[str, Any]:
    out: dict[str, Any] = {"ok": False, "error": exc.message}
    retry = exc.extra.get("retry_after")
    if retry:
        out["retry_after"] = retry
    return out
