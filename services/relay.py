# services/relay.py
# CineStream - Remote control relay rooms (phone remote <-> player)
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

import asyncio
import uuid
from typing import Any, Protocol

from _logging import log

# event -> payload field forwarded to the other peers (None = whole payload)
FORWARD_EVENTS: dict[str, str | None] = {
    "remote-control": None,
    "video-state-update": "state",
    "video-type-update": "videoType",
}


def _log(msg: str, level: str = "INFO") -> None:
    log(msg, level=level, module="RELAY")


class Peer(Protocol):
    async def send_json(self, data: Any) -> None: ...


class RelayHub:
    """Rooms of connected peers; messages are relayed, never stored."""

    def __init__(self) -> None:
        self._rooms: dict[str, dict[str, Peer]] = {}
        self._lock = asyncio.Lock()

    def room_size(self, room_id: str) -> int:
        return len(self._rooms.get(room_id) or {})

    def rooms(self) -> dict[str, int]:
        return {k: len(v) for k, v in self._rooms.items()}

    async def join(self, room_id: str, peer: Peer) -> str:
        client_id = uuid.uuid4().hex[:12]
        async with self._lock:
            self._rooms.setdefault(room_id, {})[client_id] = peer
        _log(f"Client {client_id} joined room {room_id}", level="DEBUG")
        await self.broadcast_status(room_id)
        return client_id

    async def leave(self, room_id: str, client_id: str, *, announce: bool = False) -> None:
        async with self._lock:
            room = self._rooms.get(room_id) or {}
            room.pop(client_id, None)
            if not room:
                self._rooms.pop(room_id, None)
        if announce:
            await self._send_room(room_id, {"event": "user-left"})
        await self.broadcast_status(room_id)

    async def broadcast_status(self, room_id: str) -> None:
        clients = list((self._rooms.get(room_id) or {}).keys())
        await self._send_room(
            room_id,
            {"event": "room-status", "data": {"clientCount": len(clients), "clients": clients, "roomId": room_id}},
        )

    async def relay(self, room_id: str, sender_id: str, event: str, data: Any) -> bool:
        if event not in FORWARD_EVENTS:
            return False
        field = FORWARD_EVENTS[event]
        payload = data.get(field) if (field and isinstance(data, dict)) else data
        await self._send_room(room_id, {"event": event, "data": payload}, skip=sender_id)
        return True

    async def _send_room(self, room_id: str, message: dict[str, Any], *, skip: str | None = None) -> None:
        peers = [(cid, p) for cid, p in (self._rooms.get(room_id) or {}).items() if cid != skip]
        for cid, peer in peers:
            try:
                await peer.send_json(message)
            except Exception as e:
                _log(f"Dropping client {cid} in room {room_id}: {e}", level="DEBUG")
                async with self._lock:
                    room = self._rooms.get(room_id) or {}
                    room.pop(cid, None)
                    if not room:
                        self._rooms.pop(room_id, None)
