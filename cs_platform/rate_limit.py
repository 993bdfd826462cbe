# cs_platform/rate_limit.py
# CineStream - Fixed-window in-memory rate limiter
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from _logging import log

__all__ = ["RateLimiter", "RateLimit", "RateLimitInfo", "PRESETS", "presets_from_config"]


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="RATELIMIT")


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitInfo:
    count: int
    remaining: int
    reset_at_ms: int
    reset_in_ms: int


PRESETS: dict[str, RateLimit] = {
    "search": RateLimit(30, 60_000),
    "chat": RateLimit(20, 60_000),
    "auth": RateLimit(5, 15 * 60_000),
    "api": RateLimit(100, 60_000),
    "video": RateLimit(10, 60_000),
}


def presets_from_config(cfg: Mapping[str, Any]) -> dict[str, RateLimit]:
    out = dict(PRESETS)
    rl = dict(cfg.get("rate_limits") or {})
    for name, val in rl.items():
        if not isinstance(val, Mapping):
            continue
        try:
            out[name] = RateLimit(max(1, int(val.get("max"))), max(1, int(val.get("window_ms"))))
        except (TypeError, ValueError):
            _log(f"Ignoring malformed rate limit '{name}'", level="WARN")
    return out


class RateLimiter:
    """Per-key request counter over fixed windows.

    State is process local. `clock` returns milliseconds and is swappable
    for tests.
    """

    def __init__(self, *, clock: Callable[[], float] | None = None, presets: Mapping[str, RateLimit] | None = None) -> None:
        self._clock = clock or (lambda: time.time() * 1000.0)
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[int, float]] = {}
        self.presets: dict[str, RateLimit] = dict(presets or PRESETS)
        self._sweeper: threading.Thread | None = None
        self._stop = threading.Event()

    def allow(self, key: str, max_requests: int, window_ms: int) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now >= entry[1]:
                self._entries[key] = (1, now + window_ms)
                return True
            count = entry[0] + 1
            self._entries[key] = (count, entry[1])
            return count <= max_requests

    def allow_preset(self, preset: str, identifier: str) -> bool:
        lim = self.presets[preset]
        return self.allow(f"{preset}:{identifier}", lim.max_requests, lim.window_ms)

    def info(self, key: str, max_requests: int) -> RateLimitInfo | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or now >= entry[1]:
            return None
        count, reset_at = entry
        return RateLimitInfo(
            count=count,
            remaining=max(0, max_requests - count),
            reset_at_ms=int(reset_at),
            reset_in_ms=max(0, int(reset_at - now)),
        )

    def retry_after_seconds(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return 0
        return max(1, int((entry[1] - now + 999) // 1000))

    def clear(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            dead = [k for k, (_, reset_at) in self._entries.items() if now >= reset_at]
            for k in dead:
                del self._entries[k]
        if dead:
            _log(f"Swept {len(dead)} expired entries", level="DEBUG")
        return len(dead)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # background cleanup
    def start_sweeper(self, interval_s: float = 60.0) -> None:
        if self._sweeper and self._sweeper.is_alive():
            return
        self._stop.clear()

        def _loop() -> None:
            while not self._stop.wait(max(1.0, float(interval_s))):
                self.sweep()

        self._sweeper = threading.Thread(target=_loop, name="ratelimit-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        t = self._sweeper
        if t and t.is_alive():
            t.join(timeout=2.0)
        self._sweeper = None
