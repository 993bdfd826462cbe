# services/visitors.py
# CineStream - Visitor logging (batched inserts, visit finalization, admin listing)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Sequence

from cs_platform.batching import BatchQueue, TimerFactory
from cs_platform.store import DocumentStore

from .watch_history import utcnow

COLL = "visitor_logs"

# (name, marker, version pattern); Edge and Chrome both say "Chrome", so Edge goes first
_BROWSERS: tuple[tuple[str, str, str], ...] = (
    ("Edge", "Edg", r"Edg(?:e|A|iOS)?/(\d+)"),
    ("Chrome", "Chrome", r"Chrome/(\d+)"),
    ("Firefox", "Firefox", r"Firefox/(\d+)"),
    ("Safari", "Safari", r"Version/(\d+)"),
)

# mobile markers first: Android UAs also say Linux, iOS UAs also say Mac OS
_SYSTEMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Android", ("Android",)),
    ("iOS", ("iPhone", "iPad", "iPod")),
    ("Windows", ("Windows",)),
    ("macOS", ("Macintosh", "Mac OS X")),
    ("Linux", ("Linux",)),
)


def parse_user_agent(ua: str | None) -> dict[str, str]:
    text = ua or ""
    browser, version = "Unknown", "Unknown"
    for name, marker, rx in _BROWSERS:
        if marker in text:
            browser = name
            m = re.search(rx, text)
            if m:
                version = m.group(1)
            break
    system = "Unknown"
    for name, markers in _SYSTEMS:
        if any(m in text for m in markers):
            system = name
            break
    return {"browser": browser, "browserVersion": version, "operatingSystem": system}


def client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str:
    fwd = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    return fwd or (headers.get("x-real-ip") or "").strip() or (fallback or "unknown")


def _parse_ts(v: Any) -> datetime | None:
    if v in (None, ""):
        return None
    try:
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(float(v) / 1000.0, tz=utcnow().tzinfo)
        dt = datetime.fromisoformat(str(v).replace("Z", "+00:00"))
        return dt if dt.tzinfo else dt.replace(tzinfo=utcnow().tzinfo)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _opt_seconds(v: Any) -> int | None:
    if v in (None, ""):
        return None
    try:
        return max(0, int(float(v)))
    except (TypeError, ValueError):
        return None


class VisitorLogBatch(BatchQueue[dict]):
    name = "VISITORS"

    def __init__(self, store: DocumentStore, *, batch_size: int = 20, timeout_s: float = 30.0, timer_factory: TimerFactory | None = None) -> None:
        super().__init__(batch_size=batch_size, timeout_s=timeout_s, timer_factory=timer_factory)
        self.store = store

    def write_batch(self, items: Sequence[dict]) -> None:
        self.store.insert_many(COLL, items)


class VisitorLogService:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        batch: VisitorLogBatch | None = None,
        ttl_days: int = 30,
        page_size: int = 50,
    ) -> None:
        self.store = store
        self.clock = clock
        self.batch = batch or VisitorLogBatch(store)
        self.ttl_days = max(1, int(ttl_days))
        self.page_size = max(1, int(page_size))

    def build_entry(self, body: Mapping[str, Any], ip: str) -> dict[str, Any]:
        ua = str(body.get("userAgent") or "")
        start = _parse_ts(body.get("startTime"))
        now = self.clock()
        doc: dict[str, Any] = {
            "ipAddress": ip,
            "userAgent": ua,
            **parse_user_agent(ua),
            "timestamp": start or now,
            "url": str(body.get("url") or "/"),
            "createdAt": now,
        }
        for k in ("referer", "pageLoadTime", "userId", "visitId"):
            if body.get(k) not in (None, ""):
                doc[k] = body[k]
        if start:
            doc["startTime"] = start
        return doc

    def record(self, body: Mapping[str, Any], ip: str) -> str:
        """Queue a visit, or finalize one for action=end. Returns what happened."""
        if body.get("action") == "end" and body.get("visitId"):
            self.finalize(str(body["visitId"]), _parse_ts(body.get("endTime")), body.get("durationSeconds"))
            return "finalized"
        self.batch.enqueue(self.build_entry(body, ip))
        return "queued"

    def finalize(self, visit_id: str, end: datetime | None = None, duration: Any = None) -> int:
        # the visit may still be sitting in the batch
        self.batch.flush_all(timeout_s=2.0)
        end = end or self.clock()
        sets: dict[str, Any] = {"endTime": end}
        secs = _opt_seconds(duration)
        if secs is None:
            start_doc = self.store.find_one(COLL, {"visitId": visit_id}) or {}
            start = start_doc.get("startTime") or start_doc.get("timestamp")
            if isinstance(start, datetime):
                secs = max(0, int((end - start).total_seconds()))
        if secs is not None:
            sets["durationSeconds"] = secs
        return self.store.update_many(COLL, {"visitId": visit_id}, {"$set": sets})

    def page(self, page: int = 1, limit: int | None = None) -> dict[str, Any]:
        lim = max(1, min(500, int(limit or self.page_size)))
        pg = max(1, int(page))
        total = self.store.count(COLL)
        rows = self.store.find(COLL, sort=[("timestamp", -1)], skip=(pg - 1) * lim, limit=lim)
        return {
            "logs": rows,
            "pagination": {
                "page": pg,
                "limit": lim,
                "total": total,
                "pages": (total + lim - 1) // lim,
            },
        }

    def delete_all(self) -> int:
        self.batch.flush_all(timeout_s=2.0)
        return self.store.delete_many(COLL)

    def prune(self) -> int:
        cutoff = self.clock() - timedelta(days=self.ttl_days)
        return self.store.delete_many(COLL, {"createdAt": {"$lt": cutoff}})
