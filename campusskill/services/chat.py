"""
Chat Room Manager.

Rooms are opened and closed by the task lifecycle (see services/lifecycle.py);
participants append and read messages. Functions here flush but never commit,
so lifecycle transitions can open/close a room inside their own transaction.
The standalone operations (post_message, mark_read) commit themselves.
"""
import logging
from typing import List
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusskill.config import settings
from campusskill.core.auth import Identity
from campusskill.errors import NotFoundError, ForbiddenError, InvalidStateError, ValidationError
from campusskill.models.chat import ChatRoom, Message, MessageRead, MessageType
from campusskill.models.task import Task
from campusskill.utils.dates import utcnow

logger = logging.getLogger(__name__)


async def get_room(db: AsyncSession, room_id: int) -> ChatRoom:
    room = await db.get(ChatRoom, room_id)
    if room is None:
        raise NotFoundError("Chat room not found")
    return room


def _append(room: ChatRoom, sender_id: int, content: str, message_type: MessageType) -> Message:
    if not content or not content.strip():
        raise ValidationError("Message content is required")
    if len(content) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Message cannot be more than {settings.MESSAGE_MAX_LENGTH} characters")

    now = utcnow()
    message = Message(
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        created_at=now,
        reads=[MessageRead(user_id=sender_id, read_at=now)],
    )
    room.messages.append(message)
    room.last_message_content = content
    room.last_message_sender_id = sender_id
    room.last_message_at = now
    return message


async def create_for_task(
    db: AsyncSession,
    task_id: int,
    participant_ids: tuple,
    opening_message: str,
    narrator_id: int,
) -> ChatRoom:
    """Open a room for the current assignment of a task, seeded with a system message."""
    poster_id, taker_id = participant_ids
    if poster_id == taker_id:
        raise ValidationError("A chat room needs two distinct participants")

    room = ChatRoom(task_id=task_id, poster_id=poster_id, taker_id=taker_id, is_active=True, messages=[])
    _append(room, narrator_id, opening_message, MessageType.SYSTEM)
    db.add(room)
    await db.flush()
    logger.info("Opened chat room %s for task %s", room.id, task_id)
    return room


async def append_message(
    db: AsyncSession,
    room_id: int,
    sender_id: int,
    content: str,
    message_type: MessageType = MessageType.TEXT,
) -> Message:
    room = await get_room(db, room_id)
    if not room.is_participant(sender_id):
        raise ForbiddenError("You are not authorized to send messages in this chat")
    if not room.is_active:
        raise InvalidStateError("This chat room is no longer active")

    message = _append(room, sender_id, content, message_type)
    await db.flush()
    return message


async def deactivate(db: AsyncSession, room_id: int, closing_message: str, narrator_id: int) -> ChatRoom:
    """Append the closing system message and close the room. A closed room stays closed."""
    room = await get_room(db, room_id)
    if not room.is_active:
        raise InvalidStateError("Chat room is already inactive")

    _append(room, narrator_id, closing_message, MessageType.SYSTEM)
    room.is_active = False
    await db.flush()
    logger.info("Closed chat room %s", room.id)
    return room


async def post_message(
    db: AsyncSession,
    identity: Identity,
    room_id: int,
    content: str,
    message_type: MessageType = MessageType.TEXT,
) -> Message:
    """Participant-authored message. System messages only come from the lifecycle."""
    if message_type == MessageType.SYSTEM:
        raise ValidationError("System messages cannot be posted directly")
    message = await append_message(db, room_id, identity.user_id, content, message_type)
    await db.commit()
    return message


async def mark_read(db: AsyncSession, identity: Identity, room_id: int) -> ChatRoom:
    """Mark every message read by the caller. Safe to repeat and to race."""
    room = await get_room(db, room_id)
    if not room.is_participant(identity.user_id):
        raise ForbiddenError("You are not authorized")

    marked = 0
    for message in room.messages:
        if identity.user_id not in message.read_by:
            message.reads.append(MessageRead(user_id=identity.user_id))
            marked += 1
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent mark_read by the same reader committed first
        await db.rollback()
        logger.debug("User %s already marked room %s read", identity.user_id, room_id)
        result = await db.execute(
            select(ChatRoom)
            .where(ChatRoom.id == room_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
    logger.debug("User %s marked %d messages read in room %s", identity.user_id, marked, room.id)
    return room


async def get_room_for_participant(db: AsyncSession, identity: Identity, room_id: int) -> ChatRoom:
    room = await get_room(db, room_id)
    if not room.is_participant(identity.user_id):
        raise ForbiddenError("You are not authorized to view this chat")
    return room


async def get_room_for_task(db: AsyncSession, identity: Identity, task_id: int) -> ChatRoom:
    """Current room of a task, or the most recent one once the task has none."""
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if identity.user_id not in (task.posted_by_id, task.taken_by_id):
        raise ForbiddenError("You are not authorized to view this chat")

    if task.chat_room_id is not None:
        return await get_room(db, task.chat_room_id)

    result = await db.execute(
        select(ChatRoom)
        .where(ChatRoom.task_id == task_id)
        .order_by(ChatRoom.id.desc())
        .limit(1)
    )
    room = result.scalar_one_or_none()
    if room is None or not room.is_participant(identity.user_id):
        raise NotFoundError("Chat room not found")
    return room


async def list_rooms(db: AsyncSession, identity: Identity) -> List[dict]:
    """Rooms the caller participates in, newest activity first, with unread counts."""
    result = await db.execute(
        select(ChatRoom)
        .where((ChatRoom.poster_id == identity.user_id) | (ChatRoom.taker_id == identity.user_id))
        .order_by(ChatRoom.updated_at.desc(), ChatRoom.id.desc())
    )
    rooms = []
    for room in result.scalars():
        unread = sum(1 for m in room.messages if identity.user_id not in m.read_by)
        rooms.append({"room": room, "unread_count": unread})
    return rooms


