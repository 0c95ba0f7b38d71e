# src/market_chat/models/chat_message.py
"""Models describing per-market chat messages."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from market_chat.db.session import Base
from market_chat.db.time import utcnow


def _new_message_id() -> str:
    return str(uuid.uuid4())


class ChatMessage(Base):
    """A sanitized chat message posted into a market's room.

    Rows are immutable once written; moderation removes them with a hard delete.
    """

    __tablename__ = "chat_message"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_message_id)

    # Room identity: the same market id can recur across contracts and networks.
    market_id: Mapped[str] = mapped_column(Text, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    network: Mapped[str] = mapped_column(String(32), nullable=False)

    sender_address: Mapped[str] = mapped_column(String(42), nullable=False)
    # Always the admission pipeline's sanitized output.
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_chat_message_room", "contract_address", "network", "market_id"),
        Index("ix_chat_message_sender", "sender_address", "created_at"),
    )


Index("ix_chat_message_created_at_desc", ChatMessage.created_at.desc())
