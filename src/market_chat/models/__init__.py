# src/market_chat/models/__init__.py
"""SQLAlchemy models for the Market Chat service."""

from .chat_message import ChatMessage
from .moderation import HIDEABLE_FIELDS, ModeratedMarket
from .rate_limit import ChatRateLimit

__all__ = [
    "ChatMessage",
    "ChatRateLimit",
    "HIDEABLE_FIELDS",
    "ModeratedMarket",
]
