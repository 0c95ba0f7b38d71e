# src/market_chat/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import (
    ChatMessageOut,
    DeleteMessageRequest,
    DeleteMessageResponse,
    SendMessageRequest,
    SendMessageResponse,
    SignedRequest,
)
from .moderation import ModerateMarketRequest, ModerateMarketResponse, ModerationRecordOut

__all__ = [
    "ChatMessageOut",
    "DeleteMessageRequest", "DeleteMessageResponse",
    "SendMessageRequest", "SendMessageResponse",
    "SignedRequest",
    "ModerateMarketRequest", "ModerateMarketResponse", "ModerationRecordOut",
]
