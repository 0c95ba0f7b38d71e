"""Typed failures returned by the chat and moderation services.

Every failure carries a stable ``code`` and the HTTP status it maps to so the
API layer can render it as ``{"success": false, "error": ..., "code": ...}``
instead of leaking an unstructured server error.
"""

from __future__ import annotations

from typing import Any


class ChatServiceError(RuntimeError):
    """Base exception for chat and moderation failures."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        """Serialize the failure into the public error envelope."""
        return {"success": False, "error": self.message, "code": self.code}


class Unauthenticated(ChatServiceError):
    """Missing, malformed, expired or mismatched wallet signature."""

    code = "UNAUTHENTICATED"
    status_code = 401

    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(message)


class Forbidden(ChatServiceError):
    """Valid signature, but the wallet lacks moderation privileges."""

    code = "FORBIDDEN"
    status_code = 403


class NotEligible(ChatServiceError):
    """Wallet is neither a holder nor the creator of the market."""

    code = "INSUFFICIENT_SHARES"
    status_code = 403


class ValidationFailed(ChatServiceError):
    """Request or message content was rejected."""

    code = "VALIDATION_FAILED"
    status_code = 400

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RateLimited(ChatServiceError):
    """Wallet must wait before sending again."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, wait_seconds: int) -> None:
        super().__init__(
            f"Rate limited. Please wait {wait_seconds} seconds before sending another message."
        )
        self.wait_seconds = wait_seconds

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["waitSeconds"] = self.wait_seconds
        return payload


class StorageError(ChatServiceError):
    """The backing store rejected a read or write; safe to retry."""

    code = "STORAGE_ERROR"
    status_code = 500
