from __future__ import annotations

from fastapi import FastAPI

from .adminAPI import router as admin_router
from .authAPI import router as auth_router, user_router
from .chatAPI import router as chat_router
from .healthAPI import router as health_router
from .historyAPI import router as history_router, playtime_router
from .metaAPI import router as meta_router
from .remoteAPI import router as remote_router
from .videoAPI import router as video_router
from .visitorAPI import router as visitor_router
from .watchlistAPI import folders_router, router as watchlist_router

__all__ = [
    "admin_router",
    "auth_router",
    "user_router",
    "chat_router",
    "health_router",
    "history_router",
    "playtime_router",
    "meta_router",
    "remote_router",
    "video_router",
    "visitor_router",
    "watchlist_router",
    "folders_router",
    "register",
]


def register(app: FastAPI) -> None:
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(history_router)
    app.include_router(playtime_router)
    app.include_router(watchlist_router)
    app.include_router(folders_router)
    app.include_router(admin_router)
    app.include_router(visitor_router)
    app.include_router(chat_router)
    app.include_router(meta_router)
    app.include_router(video_router)
    app.include_router(remote_router)
