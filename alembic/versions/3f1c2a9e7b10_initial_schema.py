"""initial schema

Revision ID: 3f1c2a9e7b10
Revises:
Create Date: 2026-10-18 10:12:41.204518

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9e7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('TEACHER', 'STUDENT', name='userrole')
task_status = sa.Enum('OPEN', 'IN_PROGRESS', 'SUBMITTED', 'COMPLETED', 'REASSIGNED', name='taskstatus')
message_type = sa.Enum('TEXT', 'SYSTEM', 'FILE', name='messagetype')
# Second reference to userrole; the type already exists by then
poster_role = postgresql.ENUM('TEACHER', 'STUDENT', name='userrole', create_type=False)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('skills', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('credit_points', sa.Integer(), nullable=False),
        sa.Column('rating_points', sa.Integer(), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False),
        sa.Column('tasks_completed', sa.Integer(), nullable=False),
        sa.Column('tasks_posted', sa.Integer(), nullable=False),
        sa.Column('average_rating', sa.Float(), nullable=False),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_total_points', 'users', ['total_points'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('credit_points', sa.Integer(), nullable=False),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', task_status, nullable=False),
        sa.Column('posted_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('poster_role', poster_role, nullable=False),
        sa.Column('taken_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('submission_content', sa.Text(), nullable=False),
        sa.Column('submission_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submission_files', sa.JSON(), nullable=False),
        sa.Column('review_satisfied', sa.Boolean(), nullable=True),
        sa.Column('review_feedback', sa.Text(), nullable=False),
        sa.Column('review_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('chat_room_id', sa.Integer(), nullable=True),
        sa.Column('reassign_count', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_tasks_id', 'tasks', ['id'])
    op.create_index('ix_tasks_status', 'tasks', ['status'])
    op.create_index('ix_tasks_posted_by_id', 'tasks', ['posted_by_id'])
    op.create_index('ix_tasks_taken_by_id', 'tasks', ['taken_by_id'])
    op.create_index('ix_tasks_chat_room_id', 'tasks', ['chat_room_id'])

    op.create_table(
        'task_previous_assignees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_task_previous_assignees_id', 'task_previous_assignees', ['id'])
    op.create_index('ix_task_previous_assignees_task_id', 'task_previous_assignees', ['task_id'])

    op.create_table(
        'user_ratings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('rated_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('review', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'rated_by_id', 'task_id', name='uq_rating_rater_task'),
    )
    op.create_index('ix_user_ratings_id', 'user_ratings', ['id'])
    op.create_index('ix_user_ratings_user_id', 'user_ratings', ['user_id'])

    op.create_table(
        'chat_rooms',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('tasks.id'), nullable=False),
        sa.Column('poster_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('taker_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_message_content', sa.Text(), nullable=True),
        sa.Column('last_message_sender_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_chat_rooms_id', 'chat_rooms', ['id'])
    op.create_index('ix_chat_rooms_task_id', 'chat_rooms', ['task_id'])
    op.create_index('ix_chat_rooms_poster_id', 'chat_rooms', ['poster_id'])
    op.create_index('ix_chat_rooms_taker_id', 'chat_rooms', ['taker_id'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('chat_rooms.id'), nullable=False),
        sa.Column('sender_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_type', message_type, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_chat_messages_id', 'chat_messages', ['id'])
    op.create_index('ix_chat_messages_room_id', 'chat_messages', ['room_id'])

    op.create_table(
        'chat_message_reads',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('message_id', sa.Integer(), sa.ForeignKey('chat_messages.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('message_id', 'user_id', name='uq_message_reader'),
    )
    op.create_index('ix_chat_message_reads_id', 'chat_message_reads', ['id'])
    op.create_index('ix_chat_message_reads_message_id', 'chat_message_reads', ['message_id'])


def downgrade() -> None:
    op.drop_table('chat_message_reads')
    op.drop_table('chat_messages')
    op.drop_table('chat_rooms')
    op.drop_table('user_ratings')
    op.drop_table('task_previous_assignees')
    op.drop_table('tasks')
    op.drop_table('users')
    message_type.drop(op.get_bind(), checkfirst=True)
    task_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
