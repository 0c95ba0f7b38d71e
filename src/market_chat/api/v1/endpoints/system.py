"""Public configuration endpoint for Market Chat clients."""

from __future__ import annotations

from fastapi import APIRouter

from market_chat.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return the limits and sign-in parameters clients need.

    Excludes the admin allowlist, connection strings and subgraph endpoints.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
        },
        "chat": {
            "networks": settings.allowed_networks,
            "rate_limit_seconds": settings.chat_rate_limit_seconds,
            "max_message_length": settings.chat_max_message_length,
            "history_limit": settings.chat_history_limit,
        },
        "siwe": {
            "statement": settings.siwe_statement,
            "session_minutes": settings.siwe_session_minutes,
        },
    }
