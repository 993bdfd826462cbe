# services/source_pref.py
# CineStream - Preferred video source per user (explicit choice vs. heartbeat hints)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable

from _logging import log, mask_source
from cs_platform.errors import NotFound, PersistenceFailure
from cs_platform.sources import id_to_name, normalize_source
from cs_platform.store import DocumentStore, StoreError

from .watch_history import WatchHistoryService, utcnow

USERS = "users"


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="SOURCE")


@dataclass
class SourceState:
    source: str | None
    at: datetime | None
    explicit: bool = False
    persisted: bool = False
    reason: str = ""
    origin: str = "user"  # user | history | none

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["lastUsedSourceAt"] = self.at
        return d


class SourceResolver:
    """Owns users.lastUsedSource.

    Explicit writes always win and are stamped with server time. Heartbeat
    hints only land when nothing fresher is stored and never replace an
    explicit choice.
    """

    def __init__(
        self,
        store: DocumentStore,
        history: WatchHistoryService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.history = history
        self.clock = clock

    def _user(self, user_id: str) -> dict[str, Any]:
        doc = self.store.find_one(USERS, {"_id": str(user_id)})
        if doc is None:
            raise NotFound("User not found")
        return doc

    # write path
    def update(self, user_id: str, source: Any, at: datetime | None = None, explicit: bool = False) -> SourceState:
        name = normalize_source(source)
        if explicit:
            return self._write_explicit(str(user_id), name)
        return self._write_hint(str(user_id), name, at or self.clock())

    def _write_explicit(self, user_id: str, name: str) -> SourceState:
        now = self.clock()
        fields = {"lastUsedSource": name, "lastUsedSourceAt": now, "lastUsedSourceExplicit": True}
        try:
            res = self.store.update_one(USERS, {"_id": user_id}, {"$set": fields})
            if not res.matched:
                raise NotFound("User not found")
        except StoreError as e:
            _log(f"Primary source write failed for user {user_id}, retrying via load/save: {e}", level="WARN")
            self._load_assign_save(user_id, fields)
        _log(f"User {user_id} chose {mask_source(name)}")
        return SourceState(name, now, True, True, "explicit")

    def _load_assign_save(self, user_id: str, fields: dict[str, Any]) -> None:
        try:
            doc = self._user(user_id)
            doc.update(fields)
            doc_id = doc.pop("_id")
            self.store.update_one(USERS, {"_id": doc_id}, {"$set": doc})
        except StoreError as e:
            raise PersistenceFailure(f"Failed to persist source: {e}") from e

    def _write_hint(self, user_id: str, name: str, at: datetime) -> SourceState:
        doc = self._user(user_id)
        cur = id_to_name(doc.get("lastUsedSource"))
        cur_at = doc.get("lastUsedSourceAt")
        cur_explicit = bool(doc.get("lastUsedSourceExplicit"))

        if cur and cur_explicit:
            _log(f"Ignored hint {mask_source(name)} for user {user_id}: explicit preference is set", level="DEBUG")
            return SourceState(cur, cur_at, True, False, "explicit-preference")
        if cur and isinstance(cur_at, datetime) and cur_at >= at:
            _log(f"Ignored stale hint {mask_source(name)} for user {user_id}", level="DEBUG")
            return SourceState(cur, cur_at, False, False, "stale")

        # compare-and-set on the timestamp we read; losing the race means a newer write landed
        filt = {
            "_id": user_id,
            "lastUsedSourceAt": cur_at if isinstance(cur_at, datetime) else None,
            "lastUsedSourceExplicit": {"$ne": True},
        }
        res = self.store.update_one(
            USERS,
            filt,
            {"$set": {"lastUsedSource": name, "lastUsedSourceAt": at, "lastUsedSourceExplicit": False}},
        )
        if not res.matched:
            fresh = self._user(user_id)
            return SourceState(
                id_to_name(fresh.get("lastUsedSource")),
                fresh.get("lastUsedSourceAt"),
                bool(fresh.get("lastUsedSourceExplicit")),
                False,
                "conflict",
            )
        return SourceState(name, at, False, True, "hint")

    # read path
    def resolve(self, user_id: str) -> SourceState:
        doc = self._user(user_id)
        stored = id_to_name(doc.get("lastUsedSource"))
        if stored:
            return SourceState(stored, doc.get("lastUsedSourceAt"), bool(doc.get("lastUsedSourceExplicit")), True, "", "user")
        latest, latest_at = self.history.latest_source(user_id)
        if latest:
            return SourceState(latest, latest_at, False, False, "", "history")
        return SourceState(None, None, False, False, "", "none")

    def admin_set(self, user_id: str, source: Any) -> SourceState:
        """Admin override, treated as an explicit choice."""
        return self.update(user_id, source, explicit=True)
