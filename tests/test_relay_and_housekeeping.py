# CineStream test scripts
from __future__ import annotations

import asyncio
from typing import Any

import pytest

import cinestream
from services.relay import RelayHub


class GonePeer:
    async def send_json(self, data: Any) -> None:
        raise ConnectionError("socket closed")


class Peer:
    def __init__(self) -> None:
        self.sent: list[Any] = []

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)


def test_room_is_removed_when_last_peer_drops() -> None:
    hub = RelayHub()

    async def run() -> None:
        hub._rooms["r1"] = {"gone": GonePeer()}
        await hub.relay("r1", "someone-else", "remote-control", {"action": "play"})

    asyncio.run(run())
    assert hub.rooms() == {}
    assert hub.room_size("r1") == 0


def test_dead_peer_is_dropped_and_live_peer_kept() -> None:
    hub = RelayHub()
    live = Peer()

    async def run() -> None:
        hub._rooms["r2"] = {"gone": GonePeer(), "live": live}
        await hub.relay("r2", "sender", "video-state-update", {"state": {"paused": True}})

    asyncio.run(run())
    assert hub.rooms() == {"r2": 1}
    assert live.sent == [{"event": "video-state-update", "data": {"paused": True}}]


def test_housekeeping_failure_does_not_stop_pruning(monkeypatch) -> None:
    calls: list[Any] = []

    def flaky(ctx: Any) -> None:
        calls.append(ctx)
        if len(calls) == 1:
            raise RuntimeError("disk full")

    monkeypatch.setattr(cinestream, "_housekeeping", flaky)

    async def run() -> None:
        task = asyncio.create_task(cinestream._prune_loop("ctx", interval=0))
        while len(calls) < 2:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(run(), 5))
    assert len(calls) >= 2 and set(calls) == {"ctx"}
