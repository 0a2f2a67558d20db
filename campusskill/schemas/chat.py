from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from campusskill.models.chat import MessageType

class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    message_type: MessageType = MessageType.TEXT

class MessageResponse(BaseModel):
    id: int
    sender_id: int
    content: str
    message_type: MessageType
    read_by: List[int]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}

class ChatRoomResponse(BaseModel):
    id: int
    task_id: int
    participants: List[int]
    is_active: bool
    last_message_content: Optional[str]
    last_message_sender_id: Optional[int]
    last_message_at: Optional[datetime]
    messages: List[MessageResponse]

    model_config = {"from_attributes": True}

class ChatRoomSummary(BaseModel):
    id: int
    task_id: int
    participants: List[int]
    is_active: bool
    last_message_content: Optional[str]
    last_message_at: Optional[datetime]
    unread_count: int
