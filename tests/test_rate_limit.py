# CineStream test scripts
from __future__ import annotations

from cs_platform.rate_limit import PRESETS, RateLimit, RateLimiter, presets_from_config


class MsClock:
    def __init__(self) -> None:
        self.t = 1_000_000.0

    def __call__(self) -> float:
        return self.t


def test_sixth_call_in_window_is_denied_and_window_expiry_resets() -> None:
    clock = MsClock()
    rl = RateLimiter(clock=clock)

    assert all(rl.allow("k", 5, 60_000) for _ in range(5))
    assert rl.allow("k", 5, 60_000) is False

    clock.t += 60_000
    assert rl.allow("k", 5, 60_000) is True
    info = rl.info("k", 5)
    assert info is not None and info.count == 1 and info.remaining == 4


def test_keys_are_independent_and_clearable() -> None:
    clock = MsClock()
    rl = RateLimiter(clock=clock)
    assert rl.allow("a", 1, 1000)
    assert not rl.allow("a", 1, 1000)
    assert rl.allow("b", 1, 1000)

    rl.clear("a")
    assert rl.allow("a", 1, 1000)

    rl.clear_all()
    assert len(rl) == 0


def test_retry_after_and_sweep() -> None:
    clock = MsClock()
    rl = RateLimiter(clock=clock)
    rl.allow("x", 1, 10_000)
    rl.allow("y", 1, 30_000)
    assert rl.retry_after_seconds("x") == 10
    assert rl.retry_after_seconds("missing") == 0

    clock.t += 10_000
    assert rl.sweep() == 1
    assert len(rl) == 1
    assert rl.info("x", 1) is None


def test_presets_use_prefixed_keys() -> None:
    clock = MsClock()
    rl = RateLimiter(clock=clock, presets={"video": RateLimit(2, 60_000)})
    assert rl.allow_preset("video", "1.2.3.4")
    assert rl.allow_preset("video", "1.2.3.4")
    assert not rl.allow_preset("video", "1.2.3.4")
    assert rl.allow_preset("video", "5.6.7.8")
    assert rl.info("video:1.2.3.4", 2).remaining == 0


def test_presets_from_config_overrides_and_ignores_junk() -> None:
    out = presets_from_config({"rate_limits": {"search": {"max": 3, "window_ms": 1000}, "chat": {"max": "x"}, "sweep_seconds": 60}})
    assert out["search"] == RateLimit(3, 1000)
    assert out["chat"] == PRESETS["chat"]
    assert out["auth"] == RateLimit(5, 15 * 60_000)
