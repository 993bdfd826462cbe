# CineStream test scripts
from __future__ import annotations

import pytest

from cs_platform.errors import NotFound, ValidationError
from cs_platform.store import DuplicateKeyError, JsonStore
from services.watch_history import HistoryKey, WatchHistoryService, estimate_progress


@pytest.fixture()
def history(store: JsonStore, clock) -> WatchHistoryService:
    return WatchHistoryService(store, clock=clock, retry_delay_s=0)


def test_episodes_do_not_collide(history: WatchHistoryService, store: JsonStore) -> None:
    history.record("u", {"mediaId": 1399, "mediaType": "tv", "seasonNumber": 1, "episodeNumber": 1, "currentTime": 100})
    history.record("u", {"mediaId": 1399, "mediaType": "tv", "seasonNumber": 1, "episodeNumber": 2, "currentTime": 200})
    history.record("u", {"mediaId": 1399, "mediaType": "tv", "seasonNumber": 1, "episodeNumber": 1, "currentTime": 300})
    rows = store.find("watchhistories", sort=[("episodeNumber", 1)])
    assert [(r["episodeNumber"], r["currentTime"]) for r in rows] == [(1, 300), (2, 200)]


def test_movie_key_ignores_season_fields() -> None:
    assert HistoryKey.build("u", "550", "MOVIE", 3, 4) == HistoryKey("u", 550, "movie")
    with pytest.raises(ValidationError):
        HistoryKey.build("u", None, "movie")
    with pytest.raises(ValidationError):
        HistoryKey.build("u", 1, "anime")
    with pytest.raises(ValidationError):
        HistoryKey.build("u", 1, "tv", "one", 1)


def test_partial_update_keeps_stored_fields(history: WatchHistoryService) -> None:
    key = HistoryKey.build("u", 550, "movie")
    history.upsert(key, {"title": "Fight Club", "progress": 45, "posterPath": "/p.jpg"})
    doc = history.upsert(key, {"currentTime": 900, "progress": None})
    assert doc["title"] == "Fight Club"
    assert doc["progress"] == 45
    assert doc["currentTime"] == 900
    assert doc["finished"] is False


def test_insert_race_updates_existing_entry(history: WatchHistoryService, store: JsonStore, monkeypatch) -> None:
    key = HistoryKey.build("u", 42, "movie")
    history.upsert(key, {"title": "First"})
    real = store.update_one
    state = {"raised": False}

    def racing(coll, filt, update, *, upsert=False):
        if upsert and not state["raised"]:
            state["raised"] = True
            raise DuplicateKeyError("E11000")
        return real(coll, filt, update, upsert=upsert)

    monkeypatch.setattr(store, "update_one", racing)
    doc = history.upsert(key, {"currentTime": 77})
    assert doc["currentTime"] == 77 and doc["title"] == "First"
    assert store.count("watchhistories") == 1


def test_list_newest_first_and_trim(history: WatchHistoryService, clock) -> None:
    history.history_keep = 2
    for mid in (1, 2, 3):
        clock.advance(10)
        history.record("u", {"mediaId": mid, "mediaType": "movie"})
    assert [r["mediaId"] for r in history.list("u", limit=10)] == [3, 2]
    assert [r["mediaId"] for r in history.list("u", limit=1)] == [3]


def test_delete_is_scoped_to_owner(history: WatchHistoryService) -> None:
    doc = history.record("owner", {"mediaId": 7, "mediaType": "movie"})
    with pytest.raises(NotFound):
        history.delete("intruder", doc["_id"])
    history.delete("owner", doc["_id"])
    assert history.list("owner") == []


@pytest.mark.parametrize(
    "progress,cur,total,expected",
    [
        (55.4, 0, 0, 55),
        (150, 0, 0, 100),
        (None, 1800, 3600, 50),
        (0, 3600, 0, 50),
        (None, 99_999, 0, 99),
        (None, 0, 0, 0),
    ],
)
def test_estimate_progress(progress, cur, total, expected) -> None:
    assert estimate_progress(progress, cur, total) == expected


def test_estimate_progress_rejects_garbage() -> None:
    with pytest.raises(ValidationError):
        estimate_progress(None, "abc", 10)
