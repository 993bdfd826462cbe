# services/settings.py
# CineStream - Site-wide settings singleton (maintenance flags, default source, visitor logging)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Any, Callable, Mapping

from _logging import log
from cs_platform.errors import ValidationError
from cs_platform.sources import DEFAULT_SOURCE, id_to_name
from cs_platform.store import DocumentStore, DuplicateKeyError

from .watch_history import utcnow

COLL = "settings"
SETTINGS_KEY = "app_settings"

DEFAULT_SETTINGS: dict[str, Any] = {
    "isMaintenanceMode": False,
    "isChatbotMaintenanceMode": False,
    "isVisitorLoggingEnabled": True,
    "videoSource": DEFAULT_SOURCE,
}

BOOL_FIELDS = ("isMaintenanceMode", "isChatbotMaintenanceMode", "isVisitorLoggingEnabled")


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="SETTINGS")


class SettingsService:
    """Lazily created settings document; reads are cached for `cache_ttl_s`."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        default_source: str = DEFAULT_SOURCE,
        cache_ttl_s: float = 5.0,
    ) -> None:
        self.store = store
        self.clock = clock
        self.default_source = id_to_name(default_source) or DEFAULT_SOURCE
        self.cache_ttl_s = float(cache_ttl_s)
        self._cache: tuple[float, dict[str, Any]] | None = None
        self._lock = threading.Lock()

    def _defaults(self) -> dict[str, Any]:
        d = dict(DEFAULT_SETTINGS)
        d["videoSource"] = self.default_source
        return d

    def _ensure(self) -> dict[str, Any]:
        doc = self.store.find_one(COLL, {"key": SETTINGS_KEY})
        if doc is None:
            fresh = {"key": SETTINGS_KEY, **self._defaults(), "updatedAt": self.clock()}
            try:
                self.store.insert_one(COLL, fresh)
                _log("Created settings document", level="DEBUG")
            except DuplicateKeyError:
                pass
            doc = self.store.find_one(COLL, {"key": SETTINGS_KEY}) or fresh

        repairs: dict[str, Any] = {}
        for k, v in self._defaults().items():
            if k not in doc or doc.get(k) is None:
                repairs[k] = v
        src = id_to_name(doc.get("videoSource"))
        if src is None:
            repairs["videoSource"] = self.default_source
        elif src != doc.get("videoSource"):
            repairs["videoSource"] = src
        if repairs:
            self.store.update_one(COLL, {"key": SETTINGS_KEY}, {"$set": repairs})
            _log(f"Repaired settings fields: {', '.join(sorted(repairs))}", level="WARN")
            doc.update(repairs)
        return doc

    def get(self, *, fresh: bool = False) -> dict[str, Any]:
        with self._lock:
            now = time.monotonic()
            if not fresh and self._cache and (now - self._cache[0]) < self.cache_ttl_s:
                return dict(self._cache[1])
            doc = self._ensure()
            out = {k: doc.get(k) for k in DEFAULT_SETTINGS}
            self._cache = (now, out)
            return dict(out)

    def update(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        sets: dict[str, Any] = {}
        for k in BOOL_FIELDS:
            if k in payload and payload[k] is not None:
                if not isinstance(payload[k], bool):
                    raise ValidationError("Invalid payload")
                sets[k] = payload[k]
        if payload.get("videoSource") is not None:
            src = id_to_name(payload["videoSource"])
            if src is None:
                raise ValidationError("Invalid video source")
            sets["videoSource"] = src
        with self._lock:
            self._ensure()
            if sets:
                sets["updatedAt"] = self.clock()
                self.store.update_one(COLL, {"key": SETTINGS_KEY}, {"$set": sets})
                _log(f"Updated settings: {', '.join(sorted(k for k in sets if k != 'updatedAt'))}")
            self._cache = None
        return self.get(fresh=True)

    def maintenance(self) -> bool:
        return bool(self.get().get("isMaintenanceMode"))

    def chatbot_maintenance(self) -> bool:
        return bool(self.get().get("isChatbotMaintenanceMode"))

    def visitor_logging(self) -> bool:
        return bool(self.get().get("isVisitorLoggingEnabled"))
