# services/watch_history.py
# CineStream - Watch history (resume points) keyed by user, media and episode
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from _logging import log
from cs_platform.errors import NotFound, ValidationError
from cs_platform.sources import id_to_name
from cs_platform.store import DocumentStore, DuplicateKeyError

COLL = "watchhistories"
MEDIA_TYPES = ("movie", "tv")

# Fields a caller may write on an entry; anything else is ignored
HISTORY_FIELDS = (
    "title",
    "posterPath",
    "currentTime",
    "totalDuration",
    "progress",
    "totalPlayedSeconds",
    "finished",
    "lastWatchedAt",
    "source",
    "sourceSetAt",
)

_INSERT_DEFAULTS: dict[str, Any] = {
    "title": "",
    "posterPath": None,
    "currentTime": 0,
    "totalDuration": 0,
    "progress": 0,
    "totalPlayedSeconds": 0,
    "finished": False,
}

# Embed players rarely report a duration; assume a feature-length runtime
ESTIMATED_DURATION_S = 120 * 60


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="HISTORY")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _opt_int(v: Any, what: str) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{what} must be a number") from None


@dataclass(frozen=True)
class HistoryKey:
    user_id: str
    media_id: int
    media_type: str
    season: int | None = None
    episode: int | None = None

    @classmethod
    def build(cls, user_id: str, media_id: Any, media_type: Any, season: Any = None, episode: Any = None) -> "HistoryKey":
        mt = str(media_type or "").strip().lower()
        if mt not in MEDIA_TYPES:
            raise ValidationError("mediaType must be 'movie' or 'tv'")
        mid = _opt_int(media_id, "mediaId")
        if mid is None:
            raise ValidationError("mediaId is required")
        if mt == "movie":
            return cls(str(user_id), mid, mt)
        return cls(str(user_id), mid, mt, _opt_int(season, "seasonNumber"), _opt_int(episode, "episodeNumber"))

    def as_filter(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "mediaId": self.media_id,
            "mediaType": self.media_type,
            "seasonNumber": self.season,
            "episodeNumber": self.episode,
        }


def estimate_progress(progress: Any, current_time: Any, total_duration: Any) -> int:
    """Percent watched; supplied progress wins, else derived from position and duration."""
    try:
        if progress not in (None, "", 0) and float(progress) > 0:
            return max(0, min(100, int(round(float(progress)))))
        cur = float(current_time or 0)
        total = float(total_duration or 0)
    except (TypeError, ValueError):
        raise ValidationError("progress, currentTime and totalDuration must be numbers") from None
    if cur > 0 and total > 0:
        return max(0, min(100, int(round(cur / total * 100))))
    if cur > 0:
        return min(99, int(round(cur / ESTIMATED_DURATION_S * 100)))
    return 0


class WatchHistoryService:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        history_keep: int = 20,
        retry_delay_s: float = 0.05,
    ) -> None:
        self.store = store
        self.clock = clock
        self.history_keep = max(1, int(history_keep))
        self.retry_delay_s = retry_delay_s

    def get(self, key: HistoryKey) -> dict[str, Any] | None:
        return self.store.find_one(COLL, key.as_filter())

    def upsert(self, key: HistoryKey, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Converge the entry for `key`; fields that are absent or None keep their stored value."""
        sets = {k: fields[k] for k in HISTORY_FIELDS if k in fields and fields[k] is not None}
        sets.setdefault("lastWatchedAt", self.clock())
        on_insert = {k: v for k, v in _INSERT_DEFAULTS.items() if k not in sets}
        filt = key.as_filter()

        try:
            self.store.update_one(COLL, filt, {"$set": sets, "$setOnInsert": on_insert}, upsert=True)
        except DuplicateKeyError:
            # concurrent first write for the same key won the insert; update it in place
            self._update_existing(key, sets)

        doc = self.store.find_one(COLL, filt)
        if doc is None:
            raise NotFound("Watch history entry vanished after write")
        return doc

    def _update_existing(self, key: HistoryKey, sets: Mapping[str, Any], attempts: int = 5) -> None:
        for attempt in range(attempts):
            existing = self.store.find_one(COLL, key.as_filter())
            if existing is not None:
                self.store.update_one(COLL, {"_id": existing["_id"]}, {"$set": dict(sets)})
                _log(f"Resolved duplicate key for media {key.media_id} on attempt {attempt + 1}", level="DEBUG")
                return
            time.sleep(self.retry_delay_s)
        raise DuplicateKeyError(f"Unable to resolve duplicate watch history for media {key.media_id}")

    def record(self, user_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Direct (non batched) progress write from the player."""
        key = HistoryKey.build(
            user_id,
            payload.get("mediaId"),
            payload.get("mediaType"),
            payload.get("seasonNumber"),
            payload.get("episodeNumber"),
        )
        fields = {
            "title": payload.get("title") or "",
            "posterPath": payload.get("posterPath"),
            "progress": estimate_progress(payload.get("progress"), payload.get("currentTime"), payload.get("totalDuration")),
            "currentTime": payload.get("currentTime") or 0,
            "totalDuration": payload.get("totalDuration") or 0,
            "finished": bool(payload.get("finished") or False),
            "lastWatchedAt": self.clock(),
        }
        doc = self.upsert(key, fields)
        self.trim(user_id)
        return doc

    def list(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        return self.store.find(COLL, {"userId": str(user_id)}, sort=[("lastWatchedAt", -1)], limit=max(1, int(limit)))

    def delete(self, user_id: str, entry_id: str) -> None:
        n = self.store.delete_one(COLL, {"_id": str(entry_id), "userId": str(user_id)})
        if not n:
            raise NotFound("Watch history item not found")

    def trim(self, user_id: str, keep: int | None = None) -> int:
        keep = self.history_keep if keep is None else max(0, int(keep))
        extra = self.store.find(COLL, {"userId": str(user_id)}, sort=[("lastWatchedAt", -1)], skip=keep)
        if not extra:
            return 0
        n = self.store.delete_many(COLL, {"_id": {"$in": [e["_id"] for e in extra]}})
        _log(f"Trimmed {n} item(s) for user {user_id} (kept {keep})", level="DEBUG")
        return n

    def latest_source(self, user_id: str) -> tuple[str | None, datetime | None]:
        """Source and lastWatchedAt of the newest entry; no source if that entry recorded none."""
        rows = self.store.find(COLL, {"userId": str(user_id)}, sort=[("lastWatchedAt", -1)], limit=1)
        if not rows:
            return None, None
        name = id_to_name(rows[0].get("source"))
        return (name, rows[0].get("lastWatchedAt")) if name else (None, None)
