"""market chat tables

Revision ID: 3c1a9e5f7b20
Revises:
Create Date: 2026-10-19 09:12:44.501238

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1a9e5f7b20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create chat message, rate limit and market moderation tables."""
    op.create_table(
        "chat_message",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("market_id", sa.Text(), nullable=False),
        sa.Column("contract_address", sa.String(length=42), nullable=False),
        sa.Column("network", sa.String(length=32), nullable=False),
        sa.Column("sender_address", sa.String(length=42), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_chat_message_room",
        "chat_message",
        ["contract_address", "network", "market_id"],
    )
    op.create_index(
        "ix_chat_message_sender",
        "chat_message",
        ["sender_address", "created_at"],
    )
    op.create_index(
        "ix_chat_message_created_at_desc",
        "chat_message",
        [sa.text("created_at DESC")],
    )

    op.create_table(
        "chat_rate_limit",
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("wallet_address"),
    )

    op.create_table(
        "moderated_market",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("market_id", sa.Text(), nullable=False),
        sa.Column("contract_address", sa.String(length=42), nullable=False),
        sa.Column("network", sa.String(length=32), nullable=False),
        sa.Column("hidden_fields", sa.JSON(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("moderated_by", sa.String(length=42), nullable=False),
        sa.Column("moderated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "contract_address", "network", "market_id", name="uq_moderated_market_key"
        ),
    )


def downgrade() -> None:
    """Drop market chat tables."""
    op.drop_table("moderated_market")
    op.drop_table("chat_rate_limit")
    op.drop_index("ix_chat_message_created_at_desc", table_name="chat_message")
    op.drop_index("ix_chat_message_sender", table_name="chat_message")
    op.drop_index("ix_chat_message_room", table_name="chat_message")
    op.drop_table("chat_message")
