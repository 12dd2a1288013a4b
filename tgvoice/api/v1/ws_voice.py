from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tgvoice.runtime.hub import hub
from tgvoice.runtime.presence import presence
from tgvoice.schemas.room import VoiceRoomMemberOut, VoiceRoomOut
from tgvoice.services.identity_service import AuthenticationError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["voice"])

WS_CLOSE_AUTH_FAILED = 4401


class WebSocketConnection:
    """Adapts a FastAPI WebSocket to the registry's Connection protocol."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.connection_id = str(uuid.uuid4())

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


@router.websocket("/ws")
async def voice_ws(websocket: WebSocket):
    await websocket.accept()

    conn = WebSocketConnection(websocket)
    await hub.connect(conn)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                await hub.reject(conn, "binary frames are not supported")
                continue
            await hub.dispatch(conn, raw)

    except WebSocketDisconnect:
        pass
    except AuthenticationError as e:
        logger.info("Closing %s: %s", conn.connection_id, e)
        await websocket.close(code=WS_CLOSE_AUTH_FAILED, reason="invalid initData signature")
    finally:
        await hub.disconnect(conn)


@router.get("/rooms/{room_id}", response_model=VoiceRoomOut)
async def get_voice_room(room_id: str) -> VoiceRoomOut:
    """Live presence snapshot of a voice room."""
    members = presence.members(room_id)
    return VoiceRoomOut(
        room_id=room_id,
        participant_count=len(members),
        members=[
            VoiceRoomMemberOut(user_id=m.user_id, display_name=m.display_name)
            for m in members
        ],
    )
