# CineStream test scripts
from __future__ import annotations

from fastapi.testclient import TestClient

import responses
from conftest import ADMIN_EMAIL, login, signup
from providers.metadata._meta_TMDB import API_BASE


def test_health_reports_store_and_queues(client: TestClient) -> None:
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True and body["store"] == "json"
    assert body["queues"] == {"playtime": 0, "visitors": 0}


def test_signup_login_session(client: TestClient) -> None:
    r = client.post("/api/auth/signup", json={"name": "Ada", "email": "ada@cinestream.test", "password": "lovelace"})
    assert r.status_code == 201
    assert "password" not in r.json()["user"]

    dup = client.post("/api/auth/signup", json={"name": "Ada", "email": "ADA@cinestream.test", "password": "lovelace"})
    assert dup.status_code == 409
    assert dup.json() == {"ok": False, "error": "User already exists"}

    assert client.post("/api/auth/signup", json={"email": "x@cinestream.test"}).status_code == 400
    assert client.post("/api/auth/login", json={"email": "ada@cinestream.test", "password": "nope"}).status_code == 401

    headers = login(client, "ada@cinestream.test", "lovelace")
    me = client.get("/api/auth/session", headers=headers).json()["user"]
    assert me["email"] == "ada@cinestream.test" and me["role"] == "user"

    client.post("/api/auth/logout", headers=headers)
    assert client.get("/api/auth/session", headers=headers).json()["user"] is None


def test_protected_routes_need_a_session(client: TestClient) -> None:
    assert client.get("/api/watchlist").status_code == 401
    assert client.get("/api/watch-history").status_code == 401
    assert client.post("/api/playtime", json={}).status_code == 401


def test_watchlist_and_folders(client: TestClient, user_headers: dict[str, str]) -> None:
    h = user_headers
    items = client.post("/api/watchlist", json={"mediaId": 550, "mediaType": "movie", "title": "Fight Club"}, headers=h).json()
    assert [i["mediaId"] for i in items] == [550]
    client.post("/api/watchlist", json={"mediaId": 550, "mediaType": "movie", "title": "Fight Club"}, headers=h)
    client.post("/api/watchlist", json={"mediaId": 1399, "mediaType": "tv", "title": "GoT"}, headers=h)
    assert len(client.get("/api/watchlist", headers=h).json()) == 2

    single = client.get("/api/watchlist/status", params={"mediaId": 550, "mediaType": "movie"}, headers=h).json()
    assert single == {"isInWatchlist": True}
    bulk = client.get(
        "/api/watchlist/status", params={"mediaIds": "550,1399,7", "mediaTypes": "movie,movie,movie"}, headers=h
    ).json()
    assert bulk == {"550-movie": True, "1399-movie": False, "7-movie": False}
    assert client.get("/api/watchlist/status", headers=h).status_code == 400

    folder = client.post("/api/watchlist-folders", json={"name": "Weekend"}, headers=h)
    assert folder.status_code == 201
    fid = folder.json()["_id"]
    assert client.post("/api/watchlist-folders", json={"name": "Weekend"}, headers=h).status_code == 409
    assert client.post("/api/watchlist-folders", json={"name": " "}, headers=h).status_code == 400

    moved = client.patch("/api/watchlist/move", json={"mediaId": 550, "mediaType": "movie", "folderId": fid}, headers=h)
    assert moved.json()["folderId"] == fid
    assert [i["mediaId"] for i in client.get("/api/watchlist", params={"folderId": fid}, headers=h).json()] == [550]
    assert client.get("/api/watchlist-folders", headers=h).json()[0]["itemCount"] == 1

    renamed = client.patch(f"/api/watchlist-folders/{fid}", json={"name": "Friday", "color": "#00ff00"}, headers=h).json()
    assert renamed["name"] == "Friday" and renamed["description"] == ""

    gone = client.delete(f"/api/watchlist-folders/{fid}", headers=h).json()
    assert gone == {"success": True, "detached": 1}
    assert all("folderId" not in i for i in client.get("/api/watchlist", headers=h).json())

    removed = client.request("DELETE", "/api/watchlist", json={"mediaId": 550, "mediaType": "movie"}, headers=h).json()
    assert removed == {"success": True, "removed": True}


def test_folders_are_private(client: TestClient, user_headers: dict[str, str]) -> None:
    fid = client.post("/api/watchlist-folders", json={"name": "Mine"}, headers=user_headers).json()["_id"]
    other = signup(client, "other@cinestream.test")
    assert client.delete(f"/api/watchlist-folders/{fid}", headers=other).status_code == 404


def test_history_and_playtime(client: TestClient, user_headers: dict[str, str]) -> None:
    h = user_headers
    ctx = client.app.state.ctx
    rec = client.post(
        "/api/watch-history",
        json={"mediaId": 1399, "mediaType": "tv", "seasonNumber": 1, "episodeNumber": 1, "currentTime": 1800, "totalDuration": 3600},
        headers=h,
    ).json()
    assert rec["progress"] == 50

    for t in (10, 20, 30):
        r = client.post(
            "/api/playtime",
            json={"mediaId": 550, "mediaType": "movie", "currentTime": t, "source": "vidlink"},
            headers=h,
        )
        assert r.status_code == 200
    assert r.json() == {"ok": True, "queued": 3}
    assert client.post("/api/playtime", json={"mediaId": 550, "mediaType": "movie", "source": "vidking"}, headers=h).status_code == 400

    assert client.post("/api/playtime/flush", headers=h).status_code == 202
    assert ctx.playtime.flush_all(5.0)
    pending = client.get("/api/playtime/pending", headers=h).json()
    assert pending["pending"] == 0 and pending["written"] == 1

    rows = client.get("/api/watch-history", params={"limit": 5}, headers=h).json()
    movie = next(r for r in rows if r["mediaId"] == 550)
    assert movie["currentTime"] == 30 and movie["source"] == "vidlink"
    assert client.get("/api/user/source", headers=h).json()["source"] == "vidlink"

    assert client.delete(f"/api/watch-history/{movie['_id']}", headers=h).status_code == 200
    assert client.delete(f"/api/watch-history/{movie['_id']}", headers=h).status_code == 404


def test_user_source_explicit_then_stale_hint(client: TestClient, user_headers: dict[str, str]) -> None:
    h = user_headers
    st = client.post("/api/user/source", json={"source": "3"}, headers=h).json()
    assert st["source"] == "vidnest" and st["explicit"] is True and st["persisted"] is True

    hint = client.post(
        "/api/user/source", json={"source": "vidlink", "explicit": False, "at": "2020-01-01T00:00:00"}, headers=h
    ).json()
    assert hint["persisted"] is False and hint["reason"] == "explicit-preference"
    assert client.get("/api/user/source", headers=h).json()["source"] == "vidnest"
    assert client.post("/api/user/source", json={"source": "vidking"}, headers=h).status_code == 400


def test_profile_image_upload(client: TestClient, user_headers: dict[str, str]) -> None:
    ok = client.post("/api/user/upload-profile-image", files={"file": ("me.png", b"\x89PNG\r\n", "image/png")}, headers=user_headers)
    assert ok.status_code == 200
    assert ok.json()["image"].startswith("data:image/png;base64,")
    bad = client.post("/api/user/upload-profile-image", files={"file": ("me.txt", b"hi", "text/plain")}, headers=user_headers)
    assert bad.status_code == 400


def test_admin_routes_require_admin(client: TestClient, admin_headers: dict[str, str], user_headers: dict[str, str]) -> None:
    assert client.get("/api/admin/users").status_code == 401
    assert client.get("/api/admin/users", headers=user_headers).status_code == 403

    users = client.get("/api/admin/users", headers=admin_headers).json()
    assert {u["email"] for u in users} == {ADMIN_EMAIL, "viewer@cinestream.test"}
    assert all("password" not in u for u in users)

    viewer = next(u for u in users if u["email"] == "viewer@cinestream.test")
    promoted = client.put("/api/admin/users", json={"userId": viewer["_id"], "role": "admin"}, headers=admin_headers)
    assert promoted.json()["role"] == "admin"
    assert client.put("/api/admin/users", json={"userId": viewer["_id"], "role": "root"}, headers=admin_headers).status_code == 400

    st = client.post("/api/admin/set-user-source", json={"email": "viewer@cinestream.test", "source": "5"}, headers=admin_headers).json()
    assert st["source"] == "vidrock" and st["user"]["lastUsedSource"] == "vidrock"
    missing = client.post("/api/admin/set-user-source", json={"email": "ghost@cinestream.test", "source": "5"}, headers=admin_headers)
    assert missing.status_code == 404


def test_admin_deletes_user_but_not_self(client: TestClient, admin_headers: dict[str, str], user_headers: dict[str, str]) -> None:
    client.post("/api/watchlist", json={"mediaId": 1, "mediaType": "movie"}, headers=user_headers)
    me = client.get("/api/auth/session", headers=admin_headers).json()["user"]
    viewer = client.get("/api/auth/session", headers=user_headers).json()["user"]

    assert client.request("DELETE", "/api/admin/users", json={"userId": me["_id"]}, headers=admin_headers).status_code == 400
    r = client.request("DELETE", "/api/admin/users", json={"userId": viewer["_id"]}, headers=admin_headers)
    assert r.status_code == 200
    assert client.app.state.ctx.store.count("watchlists", {"userId": viewer["_id"]}) == 0
    assert client.get("/api/watchlist", headers=user_headers).status_code == 401


def test_maintenance_mode_gate(client: TestClient, admin_headers: dict[str, str], user_headers: dict[str, str]) -> None:
    assert client.post("/api/admin/maintenance", json={"isMaintenanceMode": True}, headers=user_headers).status_code == 403
    out = client.post("/api/admin/maintenance", json={"isMaintenanceMode": True}, headers=admin_headers).json()
    assert out["isMaintenanceMode"] is True

    blocked = client.get("/api/watchlist", headers=user_headers)
    assert blocked.status_code == 503
    assert blocked.json()["ok"] is False
    assert client.get("/api/watchlist", headers=admin_headers).status_code == 200
    assert client.get("/api/auth/session", headers=user_headers).status_code == 200
    assert client.get("/api/admin/maintenance").json()["isMaintenanceMode"] is True
    assert client.get("/api/health").status_code == 200

    client.post("/api/admin/maintenance", json={"isMaintenanceMode": False}, headers=admin_headers)
    assert client.get("/api/watchlist", headers=user_headers).status_code == 200
    assert client.post("/api/admin/maintenance", json={"videoSource": "vidking"}, headers=admin_headers).status_code == 400


def test_visitor_log_always_answers_200(client: TestClient, admin_headers: dict[str, str]) -> None:
    r = client.post("/api/visitor-log", json={"url": "/home", "userAgent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/127.0"})
    assert r.status_code == 200 and r.json() == {"message": "Visit logged"}
    junk = client.post("/api/visitor-log", content=b"not json", headers={"content-type": "text/plain"})
    assert junk.status_code == 200

    client.app.state.ctx.visitors.batch.flush_all(5.0)
    logs = client.get("/api/admin/visitor-logs", headers=admin_headers).json()
    assert logs["pagination"]["total"] == 2
    assert {entry["url"] for entry in logs["logs"]} == {"/home", "/"}

    client.post("/api/admin/logging", json={"isLoggingEnabled": False}, headers=admin_headers)
    assert client.get("/api/admin/logging", headers=admin_headers).json() == {"isLoggingEnabled": False}
    off = client.post("/api/visitor-log", json={"url": "/x"})
    assert off.json() == {"message": "Logging is disabled"}

    cleared = client.delete("/api/admin/visitor-logs", headers=admin_headers).json()
    assert cleared == {"ok": True, "deletedCount": 2}


def test_video_proxy_and_sources(client: TestClient, user_headers: dict[str, str]) -> None:
    r = client.post("/api/video-proxy", json={"source": "vidlink", "tmdbId": 550, "startAt": 60})
    body = r.json()
    assert body["url"].startswith("https://vidlink.pro/movie/550?")
    assert body["metadata"]["features"]["supportsProgress"] is True
    assert client.post("/api/video-proxy", json={"source": "vidlink"}).status_code == 400
    assert client.post("/api/video-proxy", json={"source": "vidking", "tmdbId": 1}).status_code == 400

    assert client.get("/api/video/sources").json()["default"] == "videasy"
    client.post("/api/user/source", json={"source": "vidnest"}, headers=user_headers)
    assert client.get("/api/video/sources", headers=user_headers).json()["default"] == "vidnest"


def test_video_endpoints_use_tmdb(client: TestClient, user_headers: dict[str, str]) -> None:
    client.post("/api/user/source", json={"source": "vidrock"}, headers=user_headers)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, f"{API_BASE}/movie/550", json={"id": 550, "title": "Fight Club", "poster_path": "/fc.jpg"})
        rsps.add(responses.GET, f"{API_BASE}/movie/9", status=404)
        rsps.add(responses.GET, f"{API_BASE}/tv/1399", json={"id": 1399, "name": "GoT"})

        movie = client.get("/api/video/movie/550", headers=user_headers).json()
        assert movie["videoUrl"] == "https://vidrock.net/movie/550"
        assert movie["source"] == "vidrock"
        assert client.get("/api/video/movie/9").status_code == 404

        tv = client.get("/api/video/tv/1399", params={"season": 2, "episode": 5, "source": "2"}).json()
        assert tv["videoUrl"].startswith("https://vidlink.pro/tv/1399/2/5")
        assert tv["currentEpisode"] == 5


def test_metadata_passthrough(client: TestClient) -> None:
    assert client.get("/api/tmdb/recommendations").json() == {"results": []}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, f"{API_BASE}/movie/550/recommendations", status=500)
        rsps.add(responses.GET, f"{API_BASE}/movie/550/videos", json={"results": [{"site": "YouTube", "type": "Trailer", "key": "SUpY"}]})
        rsps.add(responses.GET, f"{API_BASE}/search/multi", json={"results": [{"id": 1, "title": "Alien", "poster_path": "/a.jpg"}]})

        assert client.get("/api/tmdb/recommendations", params={"mediaType": "movie", "id": 550}).json() == {"results": []}
        assert client.get("/api/trailer/550", params={"mediaType": "movie"}).json() == {"trailerKey": "SUpY"}
        assert client.get("/api/search", params={"query": "alien"}).json()["results"][0]["title"] == "Alien"

    assert client.get("/api/search", params={"query": "a"}).status_code == 400
    assert client.get("/api/trailer/550", params={"mediaType": "anime"}).status_code == 400


def test_chat_guard_and_identity_answer(client: TestClient, admin_headers: dict[str, str]) -> None:
    r = client.post("/api/video-ai", json={"currentMessage": "who made you?", "mediaContext": {"title": "Heat"}})
    assert r.status_code == 200
    assert r.json()["response"].startswith("I'm **Cine**")
    assert client.post("/api/chat", json={"currentMessage": ""}).status_code == 400

    client.post("/api/admin/maintenance", json={"isChatbotMaintenanceMode": True}, headers=admin_headers)
    assert client.post("/api/chat", json={"currentMessage": "hi"}).status_code == 503


def test_auth_rate_limit_sets_retry_after(cfg, store, timers) -> None:
    from cinestream import create_app

    cfg["rate_limits"]["auth"] = {"max": 2, "window_ms": 60_000}
    with TestClient(create_app(cfg, store=store, timer_factory=timers)) as c:
        for _ in range(2):
            assert c.post("/api/auth/login", json={"email": "a@b.test", "password": "x"}).status_code == 401
        r = c.post("/api/auth/login", json={"email": "a@b.test", "password": "x"})
    assert r.status_code == 429
    assert 0 < int(r.headers["Retry-After"]) <= 60
    assert r.json()["retry_after"] == int(r.headers["Retry-After"])


def test_remote_relay_over_websocket(client: TestClient) -> None:
    with client.websocket_connect("/ws/remote/living-room") as player:
        first = player.receive_json()
        assert first["event"] == "room-status" and first["data"]["clientCount"] == 1

        with client.websocket_connect("/ws/remote/living-room") as remote:
            assert remote.receive_json()["data"]["clientCount"] == 2
            assert player.receive_json()["data"]["clientCount"] == 2

            remote.send_json({"event": "remote-control", "data": {"action": "pause"}})
            assert player.receive_json() == {"event": "remote-control", "data": {"action": "pause"}}

            player.send_json({"event": "video-state-update", "data": {"state": {"paused": True, "time": 12}}})
            assert remote.receive_json() == {"event": "video-state-update", "data": {"paused": True, "time": 12}}

            remote.send_json({"event": "remote-disconnect"})
            assert player.receive_json() == {"event": "user-left"}
            assert player.receive_json()["data"]["clientCount"] == 1
