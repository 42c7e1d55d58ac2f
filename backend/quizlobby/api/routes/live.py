"""
WebSocket API for live lobby events.

Clients subscribe to one lobby channel and receive every event
published for it. A client that missed events (slow or reconnected)
resyncs with a full snapshot, either by sending ``sync`` or with
GET /lobbies/{lobby_id}.

Message format (client -> server):
    {"type": "ping"}  -> {"type": "pong"}
    {"type": "sync"}  -> lobby_updated event with the current snapshot

Message format (server -> client):
    {"type": "<event kind>", "data": {...}}
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from quizlobby.core.events import LobbyUpdatedEvent, encode_event
from quizlobby.database import SessionLocal
from quizlobby.schemas import LobbySnapshot
from quizlobby.services import lobby_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lobbies", tags=["live"])

# Close code sent when the requested lobby does not exist
CLOSE_LOBBY_NOT_FOUND = 4404


def _load_snapshot(lobby_id: str) -> Optional[LobbySnapshot]:
    """
    Read the current snapshot with a short-lived session.

    Sockets stay open indefinitely, so they must not hold a pooled
    connection between reads.
    """
    db = SessionLocal()
    try:
        lobby = lobby_service.get_lobby(db, lobby_id)
        if lobby is None:
            return None
        return lobby_service.build_snapshot(db, lobby)
    finally:
        db.close()


async def _send_snapshot(websocket: WebSocket, snapshot: LobbySnapshot) -> None:
    await websocket.send_text(encode_event(LobbyUpdatedEvent(lobby=snapshot)))


@router.websocket("/{lobby_id}/ws")
async def lobby_websocket(
    websocket: WebSocket,
    lobby_id: str,
    user_id: Optional[int] = Query(default=None),
):
    """
    Live event channel for one lobby.

    Sends the current snapshot on connect, then every published event.
    """
    broadcaster = websocket.app.state.broadcaster

    snapshot = _load_snapshot(lobby_id)
    if snapshot is None:
        await websocket.close(code=CLOSE_LOBBY_NOT_FOUND)
        return

    await websocket.accept()
    broadcaster.subscribe(lobby_id, websocket)
    logger.info(f"User {user_id} connected to lobby {lobby_id} channel")

    try:
        await _send_snapshot(websocket, snapshot)

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue

            message_type = message.get("type") if isinstance(message, dict) else None
            if message_type == "ping":
                await websocket.send_json({"type": "pong"})
            elif message_type == "sync":
                snapshot = _load_snapshot(lobby_id)
                if snapshot is None:
                    await websocket.close(code=CLOSE_LOBBY_NOT_FOUND)
                    break
                await _send_snapshot(websocket, snapshot)

    except WebSocketDisconnect:
        logger.info(f"User {user_id} disconnected from lobby {lobby_id} channel")
    finally:
        broadcaster.unsubscribe(lobby_id, websocket)
