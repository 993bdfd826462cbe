# services/__init__.py
# CineStream - Service wiring shared by the API layer
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from cs_platform.rate_limit import RateLimiter, presets_from_config
from cs_platform.store import DocumentStore, open_store
from providers.chat._chat_GROQ import GroqChatClient
from providers.metadata._meta_TMDB import TmdbProvider
from providers.metadata._meta_YOUTUBE import YouTubeProvider

from .assistant import Assistant
from .playtime import PlaytimeBatchWriter
from .relay import RelayHub
from .settings import SettingsService
from .source_pref import SourceResolver
from .users import UserService
from .visitors import VisitorLogBatch, VisitorLogService
from .watch_history import WatchHistoryService, utcnow
from .watchlist import WatchlistService

__all__ = ["AppContext", "build_context"]


@dataclass
class AppContext:
    cfg: dict[str, Any]
    store: DocumentStore
    users: UserService
    history: WatchHistoryService
    playtime: PlaytimeBatchWriter
    sources: SourceResolver
    watchlist: WatchlistService
    settings: SettingsService
    visitors: VisitorLogService
    limiter: RateLimiter
    tmdb: TmdbProvider
    youtube: YouTubeProvider
    chat: GroqChatClient
    assistant: Assistant
    relay: RelayHub = field(default_factory=RelayHub)

    def section(self, name: str) -> dict[str, Any]:
        return dict(self.cfg.get(name) or {})

    def shutdown(self, timeout_s: float = 5.0) -> None:
        """Drain queued writes, stop background work and release the store."""
        self.limiter.stop_sweeper()
        self.playtime.close(timeout_s)
        self.visitors.batch.close(timeout_s)
        self.store.close()


def build_context(
    cfg: dict[str, Any],
    *,
    store: DocumentStore | None = None,
    clock: Callable[[], datetime] = utcnow,
    timer_factory: Any = None,
) -> AppContext:
    store = store or open_store(cfg)
    load_cfg = lambda: cfg  # noqa: E731

    auth = dict(cfg.get("auth") or {})
    play = dict(cfg.get("playtime") or {})
    vis = dict(cfg.get("visitor_log") or {})
    emb = dict(cfg.get("embeds") or {})

    users = UserService(
        store,
        clock=clock,
        iterations=int(auth.get("pbkdf2_iterations") or 260_000),
        session_ttl_days=int(auth.get("session_ttl_days") or 30),
    )
    history = WatchHistoryService(store, clock=clock, history_keep=int(play.get("history_keep") or 20))
    playtime = PlaytimeBatchWriter(
        history,
        batch_size=int(play.get("batch_size") or 10),
        timeout_s=float(play.get("batch_timeout_s") or 10.0),
        clock=clock,
        timer_factory=timer_factory,
    )
    visitors = VisitorLogService(
        store,
        clock=clock,
        batch=VisitorLogBatch(
            store,
            batch_size=int(vis.get("batch_size") or 20),
            timeout_s=float(vis.get("batch_timeout_s") or 30.0),
            timer_factory=timer_factory,
        ),
        ttl_days=int(vis.get("ttl_days") or 30),
        page_size=int(vis.get("page_size") or 50),
    )
    chat = GroqChatClient(load_cfg)

    return AppContext(
        cfg=cfg,
        store=store,
        users=users,
        history=history,
        playtime=playtime,
        sources=SourceResolver(store, history, clock=clock),
        watchlist=WatchlistService(store, clock=clock),
        settings=SettingsService(store, clock=clock, default_source=str(emb.get("default_source") or "videasy")),
        visitors=visitors,
        limiter=RateLimiter(presets=presets_from_config(cfg)),
        tmdb=TmdbProvider(load_cfg),
        youtube=YouTubeProvider(load_cfg),
        chat=chat,
        assistant=Assistant(chat, max_tokens=int((cfg.get("chat") or {}).get("max_tokens") or 1024)),
    )
