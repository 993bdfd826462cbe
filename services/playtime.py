# services/playtime.py
# CineStream - Batched playback heartbeats -> watch history
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

from _logging import log, mask_source
from cs_platform.batching import BatchQueue, TimerFactory
from cs_platform.errors import ValidationError
from cs_platform.sources import id_to_name

from .watch_history import HistoryKey, WatchHistoryService, utcnow


@dataclass(frozen=True)
class PlaytimeUpdate:
    key: HistoryKey
    current_time: float = 0.0
    total_duration: float = 0.0
    title: str = ""
    poster_path: str | None = None
    progress: float | None = None
    total_played_seconds: float = 0.0
    finished: bool = False
    source: str | None = None
    received_at: datetime = field(default_factory=utcnow)

    @property
    def coalesce_key(self) -> tuple[str, int, str]:
        return (self.key.user_id, self.key.media_id, self.key.media_type)

    @classmethod
    def from_payload(cls, user_id: str, payload: Mapping[str, Any]) -> "PlaytimeUpdate":
        key = HistoryKey.build(
            user_id,
            payload.get("mediaId"),
            payload.get("mediaType"),
            payload.get("seasonNumber"),
            payload.get("episodeNumber"),
        )
        raw_source = payload.get("source")
        source = id_to_name(raw_source) if raw_source not in (None, "") else None
        if raw_source not in (None, "") and source is None:
            raise ValidationError(f"Invalid video source: {raw_source!r}")
        try:
            progress = payload.get("progress")
            return cls(
                key=key,
                current_time=float(payload.get("currentTime") or 0),
                total_duration=float(payload.get("totalDuration") or 0),
                title=str(payload.get("title") or ""),
                poster_path=payload.get("posterPath"),
                progress=float(progress) if progress is not None else None,
                total_played_seconds=float(payload.get("totalPlayedSeconds") or 0),
                finished=bool(payload.get("finished") or False),
                source=source,
            )
        except (TypeError, ValueError):
            raise ValidationError("Playtime values must be numbers") from None


class PlaytimeBatchWriter(BatchQueue[PlaytimeUpdate]):
    """Coalesces heartbeats per (user, media, type) and upserts the newest one.

    Heartbeat sources land on the history entry only. The user's preferred
    source is owned by the source resolver and never touched here.
    """

    name = "PLAYTIME"

    def __init__(
        self,
        history: WatchHistoryService,
        *,
        batch_size: int = 10,
        timeout_s: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        super().__init__(batch_size=batch_size, timeout_s=timeout_s, timer_factory=timer_factory)
        self.history = history
        self.clock = clock
        self.written = 0

    def enqueue(self, item: PlaytimeUpdate) -> None:
        self._log(
            f"Queued media {item.key.media_id} for user {item.key.user_id} "
            f"at {int(item.current_time)}s ({mask_source(item.source) if item.source else 'no source'})",
            level="DEBUG",
        )
        super().enqueue(item)

    @staticmethod
    def coalesce(items: Sequence[PlaytimeUpdate]) -> list[PlaytimeUpdate]:
        latest: dict[tuple[str, int, str], PlaytimeUpdate] = {}
        for it in items:
            latest.pop(it.coalesce_key, None)
            latest[it.coalesce_key] = it
        return list(latest.values())

    def write_batch(self, items: Sequence[PlaytimeUpdate]) -> None:
        now = self.clock()
        unique = self.coalesce(items)
        users: set[str] = set()
        for it in unique:
            fields: dict[str, Any] = {
                "title": it.title,
                "posterPath": it.poster_path,
                "currentTime": it.current_time,
                "totalDuration": it.total_duration,
                "totalPlayedSeconds": it.total_played_seconds,
                "finished": it.finished,
                "lastWatchedAt": now,
            }
            if it.progress is not None:
                fields["progress"] = it.progress
            if it.source:
                fields["source"] = it.source
                fields["sourceSetAt"] = now
            self.history.upsert(it.key, fields)
            users.add(it.key.user_id)

        for uid in users:
            self.history.trim(uid)
        self.written += len(unique)
        self._log(f"Flushed {len(unique)} unique update(s) from {len(items)} heartbeat(s)")
