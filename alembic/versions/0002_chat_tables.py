"""chat rooms, members, messages and receipts

Revision ID: 0002_chat_tables
Revises: 0001_users_baseline
Create Date: 2026-10-19 09:31:05.402771

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_chat_tables'
down_revision: Union[str, None] = '0001_users_baseline'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'chat_rooms',
        *_base_columns(),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('room_key', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_key'),
    )
    op.create_index('ix_chat_rooms_id', 'chat_rooms', ['id'])
    op.create_index('ix_chat_rooms_type', 'chat_rooms', ['type'])
    op.create_index('ix_chat_rooms_created_at', 'chat_rooms', ['created_at'])

    op.create_table(
        'chat_members',
        *_base_columns(),
        sa.Column('room_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['chat_rooms.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'user_id', name='uq_chat_member_room_user'),
    )
    op.create_index('ix_chat_members_id', 'chat_members', ['id'])
    op.create_index('ix_chat_members_room_id', 'chat_members', ['room_id'])
    op.create_index('ix_chat_members_user_id', 'chat_members', ['user_id'])
    op.create_index('ix_chat_members_created_at', 'chat_members', ['created_at'])

    op.create_table(
        'chat_messages',
        *_base_columns(),
        sa.Column('room_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sender_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('client_msg_id', sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['chat_rooms.id']),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'client_msg_id', name='uq_chat_message_room_client_msg'),
    )
    op.create_index('ix_chat_messages_id', 'chat_messages', ['id'])
    op.create_index('ix_chat_messages_room_id', 'chat_messages', ['room_id'])
    op.create_index('ix_chat_messages_sender_id', 'chat_messages', ['sender_id'])
    op.create_index('ix_chat_messages_created_at', 'chat_messages', ['created_at'])
    op.create_index('idx_chat_message_room_time', 'chat_messages', ['room_id', 'created_at'])

    op.create_table(
        'message_receipts',
        *_base_columns(),
        sa.Column('message_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.ForeignKeyConstraint(['message_id'], ['chat_messages.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('message_id', 'user_id', name='uq_message_receipt_message_user'),
    )
    op.create_index('ix_message_receipts_id', 'message_receipts', ['id'])
    op.create_index('ix_message_receipts_message_id', 'message_receipts', ['message_id'])
    op.create_index('ix_message_receipts_user_id', 'message_receipts', ['user_id'])
    op.create_index('ix_message_receipts_created_at', 'message_receipts', ['created_at'])


def downgrade() -> None:
    op.drop_table('message_receipts')
    op.drop_table('chat_messages')
    op.drop_table('chat_members')
    op.drop_table('chat_rooms')
