# CineStream test scripts
from __future__ import annotations

import copy
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from cs_platform.config_base import DEFAULT_CFG  # noqa: E402
from cs_platform.store import JsonStore  # noqa: E402

ADMIN_EMAIL = "admin@cinestream.test"
ADMIN_PASSWORD = "admin-secret"


class FakeTimer:
    """threading.Timer stand-in; tests fire it by hand."""

    def __init__(self, interval: float, fn: Callable[[], None]) -> None:
        self.interval = interval
        self.fn = fn
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fn()


class TimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, fn: Callable[[], None]) -> FakeTimer:
        t = FakeTimer(interval, fn)
        self.timers.append(t)
        return t

    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


class Clock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def config_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("CONFIG_BASE", str(tmp_path))
    return tmp_path


@pytest.fixture()
def store() -> JsonStore:
    return JsonStore()


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def timers() -> TimerFactory:
    return TimerFactory()


@pytest.fixture()
def cfg(config_base: Path) -> dict[str, Any]:
    c = copy.deepcopy(DEFAULT_CFG)
    c["database"]["backend"] = "json"
    c["tmdb"].update({"api_key": "tmdb-test-key", "backoff_max_retries": 0})
    c["chat"]["api_key"] = "chat-test-key"
    c["auth"].update({"admin_email": ADMIN_EMAIL, "admin_password": ADMIN_PASSWORD, "pbkdf2_iterations": 1000})
    c["rate_limits"]["auth"] = {"max": 100, "window_ms": 900_000}
    return c


@pytest.fixture()
def app(cfg: dict[str, Any], store: JsonStore, timers: TimerFactory):
    from cinestream import create_app

    return create_app(cfg, store=store, timer_factory=timers)


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c


def login(client, email: str, password: str) -> dict[str, str]:
    """Log in and return bearer headers; the cookie jar is cleared so several users can share one client."""
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    token = r.cookies.get("cs_session")
    assert token
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


def signup(client, email: str, password: str = "hunter22", name: str = "Viewer") -> dict[str, str]:
    r = client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    return login(client, email, password)


@pytest.fixture()
def admin_headers(client) -> dict[str, str]:
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture()
def user_headers(client) -> dict[str, str]:
    return signup(client, "viewer@cinestream.test")
