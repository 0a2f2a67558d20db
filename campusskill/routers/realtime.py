import logging
from typing import Optional
from fastapi import APIRouter, WebSocket

from campusskill.realtime.hub import hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _bearer(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


@router.websocket("/ws")
async def realtime(websocket: WebSocket, token: Optional[str] = None):
    connection = await hub.connect(websocket, _bearer(websocket, token))
    if connection is None:
        return
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug("Connection %s closed by peer (%s)", connection.id, message.get("code"))
                break
            raw = message.get("text")
            if raw is None:
                logger.debug("Dropped binary frame from %s", connection.id)
                continue
            await hub.handle(connection, raw)
    finally:
        await hub.disconnect(connection)
