# /api/remoteAPI.py
# CineStream - WebSocket channel pairing a phone remote with the player
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from _logging import log

__all__ = ["router"]

router = APIRouter(tags=["remote"])


@router.websocket("/ws/remote/{room_id}")
async def ws_remote(websocket: WebSocket, room_id: str) -> None:
    """Messages are {"event": name, "data": payload}; joining happens on connect."""
    hub = websocket.app.state.ctx.relay
    await websocket.accept()
    client_id = await hub.join(room_id, websocket)
    announce = False
    try:
        while True:
            msg = await websocket.receive_json()
            if not isinstance(msg, dict):
                continue
            event = str(msg.get("event") or "")
            if event == "check-room-status":
                await hub.broadcast_status(room_id)
            elif event == "remote-disconnect":
                announce = True
                break
            elif event == "join-room":
                await hub.broadcast_status(room_id)
            elif not await hub.relay(room_id, client_id, event, msg.get("data")):
                log(f"Unknown relay event '{event}' in room {room_id}", level="DEBUG", module="RELAY")
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        log(f"Bad relay frame in room {room_id}: {e}", level="DEBUG", module="RELAY")
    finally:
        await hub.leave(room_id, client_id, announce=announce)
    if announce:
        await websocket.close()
