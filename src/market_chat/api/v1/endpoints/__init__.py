# src/market_chat/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .messages import router as messages_router
from .moderation import router as moderation_router
from .system import router as system_router

__all__ = [
    "messages_router",
    "moderation_router",
    "system_router",
]
