# services/watchlist.py
# CineStream - Watchlist entries and user folders
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from _logging import log
from cs_platform.errors import Conflict, NotFound, ValidationError
from cs_platform.store import DocumentStore, DuplicateKeyError

from .watch_history import MEDIA_TYPES, utcnow

ITEMS = "watchlists"
FOLDERS = "watchlistfolders"
DEFAULT_FOLDER_COLOR = "#E50914"


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="WATCHLIST")


def _media(media_id: Any, media_type: Any) -> tuple[int, str]:
    mt = str(media_type or "").strip().lower()
    if mt not in MEDIA_TYPES:
        raise ValidationError("Missing mediaId or mediaType")
    try:
        return int(media_id), mt
    except (TypeError, ValueError):
        raise ValidationError("Missing mediaId or mediaType") from None


class WatchlistService:
    def __init__(self, store: DocumentStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    # items
    def list(self, user_id: str, folder_id: str | None = None) -> list[dict[str, Any]]:
        filt: dict[str, Any] = {"userId": str(user_id)}
        if folder_id:
            filt["folderId"] = str(folder_id)
        return self.store.find(ITEMS, filt, sort=[("addedAt", -1)])

    def add(self, user_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        mid, mt = _media(payload.get("mediaId"), payload.get("mediaType"))
        filt = {"userId": str(user_id), "mediaId": mid, "mediaType": mt}
        fields: dict[str, Any] = {
            "title": str(payload.get("title") or ""),
            "posterPath": payload.get("posterPath"),
            "rating": payload.get("rating"),
            "addedAt": self.clock(),
        }
        folder_id = payload.get("folderId")
        if folder_id:
            self._folder(user_id, str(folder_id))
            fields["folderId"] = str(folder_id)
        try:
            self.store.update_one(ITEMS, filt, {"$set": fields}, upsert=True)
        except DuplicateKeyError:
            self.store.update_one(ITEMS, filt, {"$set": fields})
        doc = self.store.find_one(ITEMS, filt)
        if doc is None:
            raise NotFound("Watchlist item not found")
        return doc

    def remove(self, user_id: str, media_id: Any, media_type: Any) -> bool:
        mid, mt = _media(media_id, media_type)
        return bool(self.store.delete_one(ITEMS, {"userId": str(user_id), "mediaId": mid, "mediaType": mt}))

    def status(self, user_id: str, media_id: Any, media_type: Any) -> bool:
        mid, mt = _media(media_id, media_type)
        return self.store.find_one(ITEMS, {"userId": str(user_id), "mediaId": mid, "mediaType": mt}) is not None

    def status_many(self, user_id: str, media_ids: Iterable[Any], media_types: Iterable[Any]) -> dict[str, bool]:
        ids = list(media_ids)
        types = list(media_types)
        if len(ids) != len(types):
            raise ValidationError("Mismatched mediaIds and mediaTypes counts")
        pairs = [_media(i, t) for i, t in zip(ids, types)]
        rows = self.store.find(ITEMS, {"userId": str(user_id), "mediaId": {"$in": sorted({p[0] for p in pairs})}})
        have = {(r.get("mediaId"), r.get("mediaType")) for r in rows}
        return {f"{mid}-{mt}": (mid, mt) in have for mid, mt in pairs}

    def move(self, user_id: str, media_id: Any, media_type: Any, folder_id: str | None) -> dict[str, Any]:
        mid, mt = _media(media_id, media_type)
        filt = {"userId": str(user_id), "mediaId": mid, "mediaType": mt}
        if folder_id:
            self._folder(user_id, str(folder_id))
            upd: dict[str, Any] = {"$set": {"folderId": str(folder_id)}}
        else:
            upd = {"$unset": {"folderId": ""}}
        res = self.store.update_one(ITEMS, filt, upd)
        if not res.matched:
            raise NotFound("Watchlist item not found")
        return self.store.find_one(ITEMS, filt) or {}

    # folders
    def _folder(self, user_id: str, folder_id: str) -> dict[str, Any]:
        doc = self.store.find_one(FOLDERS, {"_id": str(folder_id), "userId": str(user_id)})
        if doc is None:
            raise NotFound("Folder not found")
        return doc

    def folders(self, user_id: str) -> list[dict[str, Any]]:
        rows = self.store.find(FOLDERS, {"userId": str(user_id)}, sort=[("createdAt", -1)])
        for r in rows:
            r["itemCount"] = self.store.count(ITEMS, {"userId": str(user_id), "folderId": r["_id"]})
        return rows

    def create_folder(self, user_id: str, name: Any, description: Any = "", color: Any = None) -> dict[str, Any]:
        nm = str(name or "").strip()
        if not nm:
            raise ValidationError("Folder name is required")
        doc = {
            "userId": str(user_id),
            "name": nm,
            "description": str(description or ""),
            "color": str(color or DEFAULT_FOLDER_COLOR),
            "createdAt": self.clock(),
        }
        try:
            doc["_id"] = self.store.insert_one(FOLDERS, doc)
        except DuplicateKeyError:
            raise Conflict("Folder with this name already exists") from None
        return doc

    def update_folder(self, user_id: str, folder_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        self._folder(user_id, folder_id)
        sets: dict[str, Any] = {}
        if str(payload.get("name") or "").strip():
            sets["name"] = str(payload["name"]).strip()
        if payload.get("description"):
            sets["description"] = str(payload["description"])
        if payload.get("color"):
            sets["color"] = str(payload["color"])
        if sets:
            try:
                self.store.update_one(FOLDERS, {"_id": str(folder_id)}, {"$set": sets})
            except DuplicateKeyError:
                raise Conflict("Folder with this name already exists") from None
        return self._folder(user_id, folder_id)

    def delete_folder(self, user_id: str, folder_id: str) -> int:
        """Delete the folder; its items stay on the watchlist without a folder."""
        self._folder(user_id, folder_id)
        detached = self.store.update_many(
            ITEMS,
            {"userId": str(user_id), "folderId": str(folder_id)},
            {"$unset": {"folderId": ""}},
        )
        self.store.delete_one(FOLDERS, {"_id": str(folder_id)})
        _log(f"Deleted folder {folder_id}, detached {detached} item(s)", level="DEBUG")
        return detached
