"""Viewer-side session handling, API access and room reconciliation."""

from .api import ApiResult, ChatApiClient, ChatApiError
from .controller import AuthState, ChatRoomController, ListState, SendOutcome
from .moderation_view import MarketModerationView
from .reconcile import MessageLog
from .session import ClientSession, LocalWalletSigner, SessionManager, WalletSigner

__all__ = [
    "ApiResult",
    "AuthState",
    "ChatApiClient",
    "ChatApiError",
    "ChatRoomController",
    "ClientSession",
    "ListState",
    "LocalWalletSigner",
    "MarketModerationView",
    "MessageLog",
    "SendOutcome",
    "SessionManager",
    "WalletSigner",
]
