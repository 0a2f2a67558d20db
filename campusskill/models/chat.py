import enum
from sqlalchemy import (
    Column, Integer, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from campusskill.database import Base
from campusskill.utils.dates import utcnow


class MessageType(str, enum.Enum):
    TEXT = "text"
    SYSTEM = "system"
    FILE = "file"


class ChatRoom(Base):
    """
    Conversation between a task's poster and its current taker.

    One room per assignment: a reassignment or completion deactivates the room
    for good and the next take opens a new one.
    """
    __tablename__ = "chat_rooms"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    poster_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    taker_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    last_message_content = Column(Text, nullable=True)
    last_message_sender_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    messages = relationship(
        "Message",
        order_by="Message.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def participants(self) -> tuple:
        return (self.poster_id, self.taker_id)

    def is_participant(self, user_id: int) -> bool:
        return user_id in self.participants


class Message(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("chat_rooms.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(SQLEnum(MessageType), default=MessageType.TEXT, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    reads = relationship("MessageRead", lazy="selectin", cascade="all, delete-orphan")

    @property
    def read_by(self) -> set:
        return {r.user_id for r in self.reads}


class MessageRead(Base):
    __tablename__ = "chat_message_reads"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("chat_messages.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    read_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_reader"),)
