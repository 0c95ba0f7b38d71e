"""Per-wallet chat cooldown backed by the ``chat_rate_limit`` table."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from market_chat.core.errors import StorageError
from market_chat.core.settings import settings
from market_chat.db.time import as_utc
from market_chat.models import ChatRateLimit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Whether a wallet may send now, and if not how long to wait."""

    allowed: bool
    wait_seconds: int = 0


class RateLimiter:
    """One global cooldown per wallet, shared by every room.

    ``check`` and ``record`` are separate calls: the caller records only after
    its message write succeeded, so two concurrent sends can both pass the check.
    """

    def __init__(self, db: Session, window_seconds: int | None = None) -> None:
        self.db = db
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.chat_rate_limit_seconds
        )

    def _get(self, wallet_address: str) -> ChatRateLimit | None:
        return self.db.get(ChatRateLimit, wallet_address.lower())

    def check(self, wallet_address: str, now: datetime) -> RateLimitDecision:
        """Return the decision for ``wallet_address`` at ``now``.

        Raises:
            StorageError: The cooldown row could not be read.
        """
        try:
            record = self._get(wallet_address)
        except SQLAlchemyError as exc:
            logger.error("Failed to load rate limit for %s", wallet_address, exc_info=True)
            raise StorageError("Failed to send message") from exc
        if record is None:
            return RateLimitDecision(allowed=True)

        elapsed = (as_utc(now) - as_utc(record.last_message_at)).total_seconds()
        if elapsed >= self.window_seconds:
            return RateLimitDecision(allowed=True)

        wait = self.window_seconds - math.floor(elapsed)
        return RateLimitDecision(
            allowed=False,
            wait_seconds=max(1, min(self.window_seconds, wait)),
        )

    def record(self, wallet_address: str, now: datetime) -> ChatRateLimit:
        """Upsert the wallet's last send time; it never moves backwards."""
        wallet = wallet_address.lower()
        record = self._get(wallet)
        if record is None:
            record = ChatRateLimit(wallet_address=wallet, last_message_at=now)
            self.db.add(record)
        elif as_utc(now) > as_utc(record.last_message_at):
            record.last_message_at = now
        self.db.commit()
        return record
