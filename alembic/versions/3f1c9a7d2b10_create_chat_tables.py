"""Create users, conversations and messages tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:12:44.201733

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('hashed_password', sa.String(length=1024), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_superuser', sa.Boolean(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('dealership_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_dealership_id'), ['dealership_id'], unique=False)

    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.Enum('user_dealer', 'user_user', name='conversationkind'), nullable=False),
        sa.Column('participant_a', sa.Text(), nullable=False),
        sa.Column('participant_b', sa.Text(), nullable=False),
        sa.Column('listing_kind', sa.Enum('sale', 'rental', 'plate', name='listingkind'), nullable=True),
        sa.Column('listing_id', sa.Integer(), nullable=True),
        sa.Column('dedup_key', sa.Text(), nullable=False),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_message_preview', sa.Text(), nullable=True),
        sa.Column('unread_count_a', sa.Integer(), server_default='0', nullable=False),
        sa.Column('unread_count_b', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('(listing_kind IS NULL) = (listing_id IS NULL)', name='ck_conversation_listing_ref_complete'),
        sa.CheckConstraint('unread_count_a >= 0 AND unread_count_b >= 0', name='ck_conversation_unread_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedup_key'),
    )
    with op.batch_alter_table('conversations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_conversations_participant_a'), ['participant_a'], unique=False)
        batch_op.create_index(batch_op.f('ix_conversations_participant_b'), ['participant_b'], unique=False)

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('conversation_id', sa.Uuid(), nullable=False),
        sa.Column('sender_id', sa.Text(), nullable=False),
        sa.Column('sender_role', sa.Enum('user', 'dealer', 'seller_user', name='senderrole'), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('body IS NOT NULL OR media_url IS NOT NULL', name='ck_message_has_content'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('messages', schema=None) as batch_op:
        batch_op.create_index('ix_messages_conversation_order', ['conversation_id', 'created_at', 'id'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('messages', schema=None) as batch_op:
        batch_op.drop_index('ix_messages_conversation_order')
    op.drop_table('messages')

    with op.batch_alter_table('conversations', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_conversations_participant_b'))
        batch_op.drop_index(batch_op.f('ix_conversations_participant_a'))
    op.drop_table('conversations')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_users_dealership_id'))
        batch_op.drop_index(batch_op.f('ix_users_email'))
    op.drop_table('users')

    sa.Enum(name='senderrole').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='listingkind').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='conversationkind').drop(op.get_bind(), checkfirst=True)
