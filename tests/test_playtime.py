# CineStream test scripts
from __future__ import annotations

import threading
from typing import Any

import pytest

from cs_platform.errors import ValidationError
from cs_platform.store import JsonStore, StoreError
from services.playtime import PlaytimeBatchWriter, PlaytimeUpdate
from services.watch_history import HistoryKey, WatchHistoryService


def _beat(user: str = "u1", media: int = 550, t: float = 0.0, **extra: Any) -> PlaytimeUpdate:
    payload = {"mediaId": media, "mediaType": extra.pop("mediaType", "movie"), "currentTime": t, "totalDuration": 7000, **extra}
    return PlaytimeUpdate.from_payload(user, payload)


@pytest.fixture()
def history(store: JsonStore, clock) -> WatchHistoryService:
    return WatchHistoryService(store, clock=clock, retry_delay_s=0)


@pytest.fixture()
def writer(history: WatchHistoryService, clock, timers) -> PlaytimeBatchWriter:
    return PlaytimeBatchWriter(history, batch_size=10, timeout_s=10.0, clock=clock, timer_factory=timers)


def test_coalesces_to_one_document_with_last_value(writer: PlaytimeBatchWriter, store: JsonStore) -> None:
    for t in (10, 20, 30):
        writer.enqueue(_beat(t=t))
    assert writer.pending() == 3
    assert writer.flush() is True

    docs = store.find("watchhistories")
    assert len(docs) == 1
    assert docs[0]["currentTime"] == 30
    assert writer.pending() == 0
    assert writer.written == 1


def test_flush_stamps_last_watched_with_flush_time(writer: PlaytimeBatchWriter, store: JsonStore, clock) -> None:
    writer.enqueue(_beat(t=5))
    flushed_at = clock.advance(42)
    writer.flush()
    assert store.find_one("watchhistories")["lastWatchedAt"] == flushed_at


def test_threshold_triggers_immediate_flush(history: WatchHistoryService, clock, timers, store: JsonStore) -> None:
    w = PlaytimeBatchWriter(history, batch_size=3, timeout_s=10.0, clock=clock, timer_factory=timers)
    w.enqueue(_beat(media=1))
    w.enqueue(_beat(media=2))
    assert store.count("watchhistories") == 0
    assert len(timers.live()) == 1

    w.enqueue(_beat(media=3))
    assert store.count("watchhistories") == 3
    assert timers.live() == []


def test_timer_flushes_quiet_queue(writer: PlaytimeBatchWriter, timers, store: JsonStore) -> None:
    writer.enqueue(_beat(t=1))
    writer.enqueue(_beat(t=2))
    assert len(timers.timers) == 1
    assert timers.timers[0].interval == 10.0

    timers.timers[0].fire()
    assert store.count("watchhistories") == 1
    assert writer.pending() == 0


def test_failed_flush_keeps_updates_queued(writer: PlaytimeBatchWriter, history: WatchHistoryService, monkeypatch, store: JsonStore) -> None:
    real_upsert = history.upsert
    calls = {"n": 0}

    def flaky(key: HistoryKey, fields: dict) -> dict:
        calls["n"] += 1
        if calls["n"] == 1:
            raise StoreError("db down")
        return real_upsert(key, fields)

    monkeypatch.setattr(history, "upsert", flaky)
    writer.enqueue(_beat(t=100))
    assert writer.flush() is False
    assert writer.pending() == 1
    assert writer.last_error and "db down" in writer.last_error

    writer.enqueue(_beat(t=120))
    assert writer.flush() is True
    assert writer.pending() == 0
    assert store.find_one("watchhistories")["currentTime"] == 120


def test_progress_only_written_when_supplied(writer: PlaytimeBatchWriter, store: JsonStore) -> None:
    writer.enqueue(_beat(t=10, progress=40))
    writer.flush()
    writer.enqueue(_beat(t=20))
    writer.flush()
    doc = store.find_one("watchhistories")
    assert doc["progress"] == 40
    assert doc["currentTime"] == 20


def test_heartbeat_source_lands_on_history_not_user(writer: PlaytimeBatchWriter, store: JsonStore) -> None:
    uid = store.insert_one("users", {"email": "p@x.test", "lastUsedSource": "vidnest", "lastUsedSourceExplicit": True})
    writer.enqueue(_beat(user=uid, t=10, source="2"))
    writer.flush()
    assert store.find_one("watchhistories")["source"] == "vidlink"
    assert store.find_one("users", {"_id": uid})["lastUsedSource"] == "vidnest"


def test_invalid_source_is_rejected_at_enqueue() -> None:
    with pytest.raises(ValidationError):
        _beat(source="vidking")


def test_flush_async_reports_outcome(writer: PlaytimeBatchWriter, store: JsonStore) -> None:
    outcomes: list[bool] = []
    reported = threading.Event()

    def on_done(ok: bool) -> None:
        outcomes.append(ok)
        reported.set()

    writer.enqueue(_beat(t=5))
    fut = writer.flush_async(timeout_s=1.0, on_done=on_done)
    assert fut.result(timeout=5) is True
    assert reported.wait(5)
    writer.close()
    assert outcomes == [True]
    assert store.count("watchhistories") == 1


def test_history_trimmed_after_flush(history: WatchHistoryService, clock, timers, store: JsonStore) -> None:
    history.history_keep = 3
    w = PlaytimeBatchWriter(history, batch_size=100, timeout_s=10.0, clock=clock, timer_factory=timers)
    for media in range(1, 6):
        w.enqueue(_beat(media=media))
        clock.advance(1)
        w.flush()
    ids = sorted(d["mediaId"] for d in store.find("watchhistories"))
    assert ids == [3, 4, 5]
