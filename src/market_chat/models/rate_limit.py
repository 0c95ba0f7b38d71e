# src/market_chat/models/rate_limit.py
"""Models supporting per-wallet chat rate limiting."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from market_chat.db.session import Base


class ChatRateLimit(Base):
    """Timestamp of a wallet's last accepted message, shared by every room."""

    __tablename__ = "chat_rate_limit"

    wallet_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
