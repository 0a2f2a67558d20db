"""
Realtime Broadcast Hub.

Best-effort fan-out over WebSocket connections. Frames are JSON objects
``{"event": <name>, "data": <payload>}`` in both directions.

Every connection authenticates during the handshake and is placed in its
owner's private room (``user:<id>``) for point-to-point notifications. Chat
rooms (``chat:<id>``) are joined and left explicitly and are forgotten on
disconnect. Nothing here touches the database: relays are at-most-once and a
peer that misses one catches up by reading the stored state.
"""
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi import status

from campusskill.core.security import decode_access_token
from campusskill.errors import AuthenticationError
from campusskill.realtime.presence import PresenceRegistry

logger = logging.getLogger(__name__)

# Notification types pushed to a user's private room
TASK_TAKEN = "task_taken"
TASK_SUBMITTED = "task_submitted"
TASK_COMPLETED = "task_completed"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def chat_room(chat_room_id: Any) -> str:
    return f"chat:{chat_room_id}"


@dataclass
class Connection:
    id: str
    user_id: int
    websocket: Any
    rooms: Set[str] = field(default_factory=set)


def _room_id(value: Any) -> Optional[str]:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    value = str(value).strip()
    return value or None


class BroadcastHub:

    def __init__(
        self,
        presence: Optional[PresenceRegistry] = None,
        authenticate: Callable[[str], Dict[str, Any]] = decode_access_token,
    ):
        self.presence = presence or PresenceRegistry()
        self._authenticate = authenticate
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._handlers: Dict[str, Callable[[Connection, Any], Awaitable[None]]] = {
            "chat:join": self._on_join,
            "chat:leave": self._on_leave,
            "chat:message": self._on_message,
            "chat:typing": self._on_typing,
            "chat:stopTyping": self._on_stop_typing,
            "chat:read": self._on_read,
        }

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, websocket, token: Optional[str]) -> Optional[Connection]:
        """Verify the bearer token, then accept. Returns None if the handshake was refused."""
        try:
            claims = self._authenticate(token or "")
            user_id = int(claims["sub"])
        except (AuthenticationError, KeyError, TypeError, ValueError) as e:
            logger.info("Refused realtime connection: %s", e)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication error")
            return None

        await websocket.accept()
        connection = Connection(id=uuid.uuid4().hex, user_id=user_id, websocket=websocket)
        self._connections[connection.id] = connection
        self.presence.register(user_id, connection.id)
        self._join(connection, user_room(user_id))
        logger.info("User %s connected (%s)", user_id, connection.id)
        return connection

    async def disconnect(self, connection: Connection) -> None:
        if self._connections.pop(connection.id, None) is None:
            return
        for room in list(connection.rooms):
            self._leave(connection, room)
        self.presence.unregister(connection.user_id, connection.id)
        logger.info("User %s disconnected (%s)", connection.user_id, connection.id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, ()))

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    def _join(self, connection: Connection, room: str) -> None:
        self._rooms.setdefault(room, set()).add(connection.id)
        connection.rooms.add(room)

    def _leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def _send(self, connection: Connection, event: str, data: Any) -> None:
        try:
            await connection.websocket.send_json({"event": event, "data": data})
        except Exception as e:
            # A dead socket loses this event; its receive loop will clean it up
            logger.warning("Dropped %s for connection %s: %s", event, connection.id, e)

    async def emit(self, room: str, event: str, data: Any, exclude: Optional[Connection] = None) -> int:
        """Send to every connection in a room. Returns how many sends were attempted."""
        sent = 0
        for connection_id in self.members(room):
            if exclude is not None and connection_id == exclude.id:
                continue
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            await self._send(connection, event, data)
            sent += 1
        return sent

    async def notify_user(self, user_id: int, notification_type: str, message: str, **extra) -> int:
        payload = {"type": notification_type, "message": message}
        payload.update(extra)
        return await self.emit(user_room(user_id), "notification", payload)

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def handle(self, connection: Connection, raw: str) -> None:
        """Dispatch one inbound frame. Anything malformed is dropped."""
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Dropped non-JSON frame from %s", connection.id)
            return
        if not isinstance(frame, dict):
            logger.debug("Dropped non-object frame from %s", connection.id)
            return

        handler = self._handlers.get(frame.get("event"))
        if handler is None:
            logger.debug("Dropped unknown event %r from %s", frame.get("event"), connection.id)
            return
        await handler(connection, frame.get("data"))

    def _joined_room(self, connection: Connection, data: Any) -> Optional[str]:
        """Target room of a relay, if the payload names one the sender has joined."""
        if not isinstance(data, dict):
            return None
        room_id = _room_id(data.get("chatRoomId"))
        if room_id is None:
            return None
        room = chat_room(room_id)
        if room not in connection.rooms:
            logger.debug("Connection %s relayed to %s without joining", connection.id, room)
            return None
        return room

    async def _on_join(self, connection: Connection, data: Any) -> None:
        room_id = _room_id(data)
        if room_id is not None:
            self._join(connection, chat_room(room_id))

    async def _on_leave(self, connection: Connection, data: Any) -> None:
        room_id = _room_id(data)
        if room_id is not None:
            self._leave(connection, chat_room(room_id))

    async def _on_message(self, connection: Connection, data: Any) -> None:
        room = self._joined_room(connection, data)
        if room is None or not data.get("message"):
            return
        await self.emit(room, "chat:newMessage", data["message"], exclude=connection)

    async def _on_typing(self, connection: Connection, data: Any) -> None:
        room = self._joined_room(connection, data)
        if room is not None:
            await self.emit(room, "chat:userTyping", data.get("user"), exclude=connection)

    async def _on_stop_typing(self, connection: Connection, data: Any) -> None:
        room = self._joined_room(connection, data)
        if room is not None:
            await self.emit(room, "chat:userStopTyping", data.get("user"), exclude=connection)

    async def _on_read(self, connection: Connection, data: Any) -> None:
        room = self._joined_room(connection, data)
        if room is not None:
            await self.emit(room, "chat:messagesRead", {"userId": connection.user_id}, exclude=connection)


hub = BroadcastHub()


def get_hub() -> BroadcastHub:
    return hub
