"""
Tests for chat rooms tied to task assignments.
"""
import pytest
from sqlalchemy import func, select

from campusskill.config import settings
from campusskill.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from campusskill.models.chat import MessageRead, MessageType
from campusskill.services import chat, lifecycle
from tests.conftest import make_user, post_task


@pytest.fixture
def taken(db, teacher, alice):
    async def _taken():
        task = await post_task(db, teacher)
        return await lifecycle.take_task(db, alice, task.id)
    return _taken


class TestMessages:

    async def test_participants_can_post(self, db, teacher, alice, taken):
        task = await taken()
        await chat.post_message(db, alice, task.chat_room_id, "Quick question about colours")
        message = await chat.post_message(db, teacher, task.chat_room_id, "Use the club palette")

        assert message.sender_id == teacher.user_id
        assert message.message_type == MessageType.TEXT
        assert message.read_by == {teacher.user_id}

        room = await chat.get_room(db, task.chat_room_id)
        assert len(room.messages) == 3
        assert room.last_message_content == "Use the club palette"
        assert room.last_message_sender_id == teacher.user_id

    async def test_outsider_cannot_post_or_read(self, db, bob, taken):
        task = await taken()
        with pytest.raises(ForbiddenError):
            await chat.post_message(db, bob, task.chat_room_id, "hello?")
        with pytest.raises(ForbiddenError):
            await chat.get_room_for_participant(db, bob, task.chat_room_id)
        with pytest.raises(ForbiddenError):
            await chat.mark_read(db, bob, task.chat_room_id)

    async def test_system_messages_cannot_be_posted(self, db, alice, taken):
        task = await taken()
        with pytest.raises(ValidationError):
            await chat.post_message(db, alice, task.chat_room_id, "Task completed!", MessageType.SYSTEM)

    @pytest.mark.parametrize("content", ["", "   "])
    async def test_empty_message_is_rejected(self, db, alice, taken, content):
        task = await taken()
        with pytest.raises(ValidationError):
            await chat.post_message(db, alice, task.chat_room_id, content)

    async def test_overlong_message_is_rejected(self, db, alice, taken):
        task = await taken()
        with pytest.raises(ValidationError):
            await chat.post_message(db, alice, task.chat_room_id, "x" * (settings.MESSAGE_MAX_LENGTH + 1))

    async def test_missing_room(self, db, alice):
        with pytest.raises(NotFoundError):
            await chat.post_message(db, alice, 9999, "hello")


class TestRoomLifetime:

    async def test_closed_room_rejects_messages(self, db, teacher, alice, taken):
        task = await taken()
        room_id = task.chat_room_id
        await lifecycle.reassign_task(db, teacher, task.id, "no progress")

        with pytest.raises(InvalidStateError):
            await chat.post_message(db, alice, room_id, "wait, I was almost done")

        # History stays readable to the former participants
        room = await chat.get_room_for_participant(db, alice, room_id)
        assert room.is_active is False

    async def test_deactivate_twice(self, db, teacher, taken):
        task = await taken()
        await chat.deactivate(db, task.chat_room_id, "closing", narrator_id=teacher.user_id)
        with pytest.raises(InvalidStateError):
            await chat.deactivate(db, task.chat_room_id, "closing again", narrator_id=teacher.user_id)

    async def test_room_needs_two_participants(self, db, alice):
        with pytest.raises(ValidationError):
            await chat.create_for_task(db, 1, (alice.user_id, alice.user_id), "hi", narrator_id=alice.user_id)

    async def test_room_for_task_follows_current_assignment(self, db, teacher, alice, bob, taken):
        task = await taken()
        first = await chat.get_room_for_task(db, alice, task.id)
        assert first.id == task.chat_room_id

        await lifecycle.reassign_task(db, teacher, task.id, "no progress")
        # With no current room, the latest one is shown
        latest = await chat.get_room_for_task(db, teacher, task.id)
        assert latest.id == first.id

        task = await lifecycle.take_task(db, bob, task.id)
        current = await chat.get_room_for_task(db, bob, task.id)
        assert current.id == task.chat_room_id != first.id

        with pytest.raises(ForbiddenError):
            await chat.get_room_for_task(db, alice, task.id)

    async def test_room_for_open_task(self, db, teacher):
        task = await post_task(db, teacher)
        with pytest.raises(NotFoundError):
            await chat.get_room_for_task(db, teacher, task.id)


class TestReads:

    async def test_mark_read_is_idempotent(self, db, teacher, alice, taken):
        task = await taken()
        await chat.post_message(db, alice, task.chat_room_id, "first draft is up")

        room = await chat.mark_read(db, teacher, task.chat_room_id)
        assert all(teacher.user_id in m.read_by for m in room.messages)
        reads_after_first = sum(len(m.reads) for m in room.messages)

        room = await chat.mark_read(db, teacher, task.chat_room_id)
        assert sum(len(m.reads) for m in room.messages) == reads_after_first

    async def test_racing_mark_read_by_same_reader(self, db, session_factory, teacher, alice, taken):
        task = await taken()
        await chat.post_message(db, alice, task.chat_room_id, "first draft is up")

        async with session_factory() as other:
            # This request loaded the room before the first mark_read committed
            stale = await chat.get_room(other, task.chat_room_id)
            assert not any(teacher.user_id in m.read_by for m in stale.messages)

            await chat.mark_read(db, teacher, task.chat_room_id)
            room = await chat.mark_read(other, teacher, task.chat_room_id)

            assert all(teacher.user_id in m.read_by for m in room.messages)

        async with session_factory() as fresh:
            reads = (await fresh.execute(
                select(func.count(MessageRead.id)).where(MessageRead.user_id == teacher.user_id)
            )).scalar_one()
        assert reads == 2

    async def test_unread_counts(self, db, teacher, alice, taken):
        task = await taken()
        await chat.post_message(db, alice, task.chat_room_id, "one")
        await chat.post_message(db, alice, task.chat_room_id, "two")

        rooms = await chat.list_rooms(db, teacher)
        assert len(rooms) == 1
        # The opening system message was narrated by Alice, so Grace has three unread
        assert rooms[0]["unread_count"] == 3

        await chat.mark_read(db, teacher, task.chat_room_id)
        rooms = await chat.list_rooms(db, teacher)
        assert rooms[0]["unread_count"] == 0

        rooms = await chat.list_rooms(db, alice)
        assert rooms[0]["unread_count"] == 0

    async def test_list_rooms_only_shows_own_rooms(self, db, bob, taken):
        await taken()
        carol = await make_user(db, "Carol")
        assert await chat.list_rooms(db, bob) == []
        assert await chat.list_rooms(db, carol) == []
