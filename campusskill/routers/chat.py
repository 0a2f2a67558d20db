from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from campusskill.database import get_db
from campusskill.core.auth import Identity, get_identity
from campusskill.schemas.chat import ChatRoomResponse, ChatRoomSummary, MessageCreate, MessageResponse
from campusskill.services import chat

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/my-chats", response_model=List[ChatRoomSummary])
async def my_chats(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity)
):
    """
    Chat rooms the current user is (or was) part of, with unread counts.
    """
    rooms = await chat.list_rooms(db, identity)
    return [
        ChatRoomSummary(
            id=entry["room"].id,
            task_id=entry["room"].task_id,
            participants=list(entry["room"].participants),
            is_active=entry["room"].is_active,
            last_message_content=entry["room"].last_message_content,
            last_message_at=entry["room"].last_message_at,
            unread_count=entry["unread_count"],
        )
        for entry in rooms
    ]


@router.get("/task/{task_id}", response_model=ChatRoomResponse)
async def get_chat_by_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity)
):
    return await chat.get_room_for_task(db, identity, task_id)


@router.get("/{room_id}", response_model=ChatRoomResponse)
async def get_chat_room(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity)
):
    return await chat.get_room_for_participant(db, identity, room_id)


@router.post("/{room_id}/message", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    room_id: int,
    message_in: MessageCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity)
):
    """
    Send a message in a chat room.
    Only participants of an active room can send messages.
    """
    return await chat.post_message(db, identity, room_id, message_in.content, message_in.message_type)


@router.put("/{room_id}/read")
async def mark_as_read(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity)
):
    await chat.mark_read(db, identity, room_id)
    return {"success": True, "message": "Messages marked as read"}
