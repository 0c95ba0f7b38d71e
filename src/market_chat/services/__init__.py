# src/market_chat/services/__init__.py
"""Business logic services for the Market Chat application."""

from .chat import ChatService
from .content_filter import AdmissionPipeline, PatternContentMatcher
from .moderation import ModerationService
from .rate_limit import RateLimiter
from .siwe import SessionVerifier, SignedAssertion

__all__ = [
    "AdmissionPipeline",
    "ChatService",
    "ModerationService",
    "PatternContentMatcher",
    "RateLimiter",
    "SessionVerifier",
    "SignedAssertion",
]
