"""direct message relay

Revision ID: 5c1e2a9d7b40
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the message log, the conversation index and the profile table."""
    op.create_table(
        "user_account",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_table(
        "direct_message",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("receiver_id", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_direct_message_sender_id", "direct_message", ["sender_id"])
    op.create_index("ix_direct_message_receiver_id", "direct_message", ["receiver_id"])
    op.create_index(
        "ix_direct_message_pair", "direct_message", ["sender_id", "receiver_id", "id"]
    )
    op.create_table(
        "conversation_index",
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("peer_id", sa.String(length=64), nullable=False),
        sa.Column("last_message_id", sa.Integer(), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["last_message_id"], ["direct_message.id"]),
        sa.PrimaryKeyConstraint("owner_id", "peer_id"),
    )
    op.create_index(
        "ix_conversation_index_owner_recent",
        "conversation_index",
        ["owner_id", "last_message_at"],
    )


def downgrade() -> None:
    """Drop the relay tables."""
    op.drop_index("ix_conversation_index_owner_recent", table_name="conversation_index")
    op.drop_table("conversation_index")
    op.drop_index("ix_direct_message_pair", table_name="direct_message")
    op.drop_index("ix_direct_message_receiver_id", table_name="direct_message")
    op.drop_index("ix_direct_message_sender_id", table_name="direct_message")
    op.drop_table("direct_message")
    op.drop_table("user_account")
