"""Chat service: signed send/delete and room history."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from market_chat.core.errors import (
    Forbidden,
    NotEligible,
    RateLimited,
    StorageError,
    ValidationFailed,
)
from market_chat.core.settings import settings
from market_chat.db.time import utcnow
from market_chat.models import ChatMessage
from market_chat.schemas.chat import ChatMessageOut
from market_chat.services.content_filter import AdmissionPipeline
from market_chat.services.eligibility import HolderPredicate
from market_chat.services.rate_limit import RateLimiter
from market_chat.services.realtime import RealtimeBroker, RealtimeError, RealtimeEvent
from market_chat.services.rooms import RoomKey
from market_chat.services.siwe import SessionVerifier, SignedAssertion

logger = logging.getLogger(__name__)

FORBIDDEN_DELETE = "Unauthorized. Only admins can delete messages."
NOT_ELIGIBLE = "You must hold shares in this market to chat"


def validate_network(network: str, allowed: Iterable[str] | None = None) -> None:
    """Raise :class:`ValidationFailed` unless ``network`` is configured."""
    networks = list(allowed) if allowed is not None else settings.allowed_networks
    if network not in networks:
        raise ValidationFailed("Invalid network")


class ChatService:
    """Orchestrates verification, admission, cooldown, storage and fan-out.

    One instance serves one request; the only state it touches is the
    database session it was handed and the broker it publishes to.
    """

    def __init__(
        self,
        db: Session,
        *,
        broker: RealtimeBroker,
        holders: HolderPredicate | None = None,
        verifier: SessionVerifier | None = None,
        pipeline: AdmissionPipeline | None = None,
        limiter: RateLimiter | None = None,
        admin_addresses: Iterable[str] | None = None,
        allowed_networks: Iterable[str] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.broker = broker
        self.holders = holders
        self.verifier = verifier or SessionVerifier()
        self.pipeline = pipeline or AdmissionPipeline()
        self.limiter = limiter or RateLimiter(db)
        self.admin_addresses = frozenset(
            address.lower()
            for address in (
                admin_addresses if admin_addresses is not None else settings.admin_addresses
            )
        )
        self.allowed_networks = (
            list(allowed_networks) if allowed_networks is not None else settings.allowed_networks
        )
        self.clock = clock

    def is_admin(self, address: str) -> bool:
        return address.lower() in self.admin_addresses

    def last_message_from(self, sender_address: str) -> str | None:
        """Return the sender's most recent stored body in any room."""
        stmt = (
            select(ChatMessage.message)
            .where(ChatMessage.sender_address == sender_address.lower())
            .order_by(ChatMessage.created_at.desc())
            .limit(1)
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to load previous message for %s", sender_address, exc_info=True)
            raise StorageError("Failed to send message") from exc

    async def send(
        self,
        credentials: SignedAssertion,
        room: RoomKey,
        raw_message: str,
    ) -> ChatMessage:
        """Admit and store a message, then publish it to the room.

        Raises:
            ValidationFailed: Bad network, oversized input or rejected content.
            Unauthenticated: The assertion does not verify.
            NotEligible: The wallet is neither holder nor creator.
            RateLimited: The wallet's cooldown has not elapsed.
            StorageError: The message could not be written.
        """
        validate_network(room.network, self.allowed_networks)
        if len(raw_message) > settings.chat_max_raw_message_length:
            raise ValidationFailed(
                f"Message exceeds {settings.chat_max_raw_message_length} character limit"
            )

        now = self.clock()
        credentials.verify_with(self.verifier, now)
        sender = credentials.address.strip().lower()

        if self.holders is not None:
            eligible = await self.holders.can_chat(sender, room)
            if eligible is False:
                logger.info("Wallet %s is not eligible to chat in %s", sender, room.channel)
                raise NotEligible(NOT_ELIGIBLE)
            if eligible is None:
                logger.warning(
                    "Eligibility unknown for %s in %s; allowing message", sender, room.channel
                )

        body = self.pipeline.process(raw_message, self.last_message_from(sender))

        decision = self.limiter.check(sender, now)
        if not decision.allowed:
            raise RateLimited(decision.wait_seconds)

        message = ChatMessage(
            market_id=room.market_id,
            contract_address=room.contract_address,
            network=room.network,
            sender_address=sender,
            message=body,
            created_at=now,
        )
        try:
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to store chat message in %s", room.channel, exc_info=True)
            raise StorageError("Failed to send message") from exc

        try:
            self.limiter.record(sender, now)
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to update rate limit for %s", sender, exc_info=True)

        await self._publish(RealtimeEvent.insert(ChatMessageOut.model_validate(message)))
        return message

    async def delete(self, credentials: SignedAssertion, message_id: str) -> bool:
        """Hard-delete a message as an admin.

        Returns True if a row was removed; deleting an unknown id is a
        successful no-op so client retries are safe.
        """
        credentials.verify_with(self.verifier, self.clock())
        if not self.is_admin(credentials.address):
            raise Forbidden(FORBIDDEN_DELETE)

        try:
            message = self.db.get(ChatMessage, message_id)
            if message is None:
                return False
            room = RoomKey.of(message.market_id, message.contract_address, message.network)
            self.db.delete(message)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to delete chat message %s", message_id, exc_info=True)
            raise StorageError("Failed to delete message") from exc

        logger.info("Admin %s deleted message %s", credentials.address.lower(), message_id)
        await self._publish(RealtimeEvent.delete(room, message_id))
        return True

    def history(
        self,
        room: RoomKey,
        limit: int | None = None,
        before: datetime | None = None,
    ) -> list[ChatMessage]:
        """Return up to ``limit`` most recent messages, oldest first."""
        count = limit if limit is not None else settings.chat_history_limit
        stmt = select(ChatMessage).where(
            ChatMessage.contract_address == room.contract_address,
            ChatMessage.network == room.network,
            ChatMessage.market_id == room.market_id,
        )
        if before is not None:
            stmt = stmt.where(ChatMessage.created_at < before)
        stmt = stmt.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(count)
        try:
            rows = list(self.db.execute(stmt).scalars())
        except SQLAlchemyError as exc:
            logger.error("Failed to load history for %s", room.channel, exc_info=True)
            raise StorageError("Failed to load messages") from exc
        rows.reverse()
        return rows

    async def _publish(self, event: RealtimeEvent) -> None:
        try:
            await self.broker.publish(event)
        except RealtimeError:
            # Viewers resync on their next history fetch.
            logger.warning("Realtime publish failed for %s", event.room.channel, exc_info=True)
