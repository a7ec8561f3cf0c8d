"""add index (conversation_id, created_at) on messages for ordered history load

Revision ID: 003
Revises: 002
Create Date: 2026-10-18

"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Send pipeline reads a conversation's full history oldest-first on every message
    op.create_index(
        "ix_messages_conversation_id_created_at",
        "messages",
        ["conversation_id", "created_at"],
    )
    # Split-successor lookup: split_from_id + owner, newest activity first
    op.create_index(
        "ix_conversations_split_from_last_active",
        "conversations",
        ["split_from_id", "user_id", "last_active"],
        postgresql_ops={"last_active": "DESC"},
    )


def downgrade() -> None:
    op.drop_index("ix_conversations_split_from_last_active", table_name="conversations")
    op.drop_index("ix_messages_conversation_id_created_at", table_name="messages")
