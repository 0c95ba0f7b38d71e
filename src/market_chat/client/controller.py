"""Per-room chat controller running on a viewer's device.

Everything here runs on one asyncio loop: the subscription consumer and the
rate-limit countdown are tasks on that loop, so the message log is only ever
touched by one coroutine at a time and needs idempotency, not locking.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from market_chat.client.api import ChatApiClient, ChatApiError
from market_chat.client.reconcile import MessageLog
from market_chat.client.session import ClientSession, SessionManager
from market_chat.core.errors import (
    Forbidden,
    NotEligible,
    RateLimited,
    Unauthenticated,
    ValidationFailed,
)
from market_chat.core.settings import settings
from market_chat.schemas.chat import ChatMessageOut
from market_chat.services.eligibility import HolderPredicate
from market_chat.services.realtime import RealtimeBroker, RealtimeError, RealtimeEvent, Subscription
from market_chat.services.rooms import RoomKey

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class ListState(str, Enum):
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class SendOutcome:
    """Result of a send or delete as the view should render it."""

    ok: bool
    message: ChatMessageOut | None = None
    error: str | None = None
    code: str | None = None
    wait_seconds: int | None = None

    @property
    def rate_limited(self) -> bool:
        return self.code == RateLimited.code


class ChatRoomController:
    """Local view of one room: session, countdown and reconciled messages."""

    def __init__(
        self,
        room: RoomKey,
        api: ChatApiClient,
        sessions: SessionManager,
        broker: RealtimeBroker,
        *,
        holders: HolderPredicate | None = None,
        admin_addresses: Iterable[str] = (),
        tick_seconds: float = 1.0,
        reconnect_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.room = room
        self.api = api
        self.sessions = sessions
        self.broker = broker
        self.holders = holders
        self.admin_addresses = frozenset(address.lower() for address in admin_addresses)
        self.tick_seconds = tick_seconds
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep

        self.log = MessageLog()
        self.list_state = ListState.LOADING
        self.countdown: int | None = None
        self._authenticating = False
        self._subscription: Subscription | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._countdown_task: asyncio.Task[None] | None = None
        self._mounted = False

    @property
    def messages(self) -> list[ChatMessageOut]:
        return self.log.messages

    @property
    def auth_state(self) -> AuthState:
        if self._authenticating:
            return AuthState.AUTHENTICATING
        if self.sessions.get_session() is not None:
            return AuthState.AUTHENTICATED
        return AuthState.UNAUTHENTICATED

    @property
    def is_admin(self) -> bool:
        address = self.sessions.signer.address
        return bool(address) and address.lower() in self.admin_addresses

    async def mount(self) -> None:
        """Subscribe to the room, then load its history."""
        self._mounted = True
        self.list_state = ListState.LOADING
        self._subscription = await self.broker.subscribe(self.room)
        self._consumer = asyncio.create_task(self._consume())
        await self.refresh()

    async def unmount(self) -> None:
        """Close the subscription and stop the countdown."""
        self._mounted = False
        for task in (self._consumer, self._countdown_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        self._consumer = None
        self._countdown_task = None
        self.countdown = None

    async def refresh(self) -> None:
        """Re-fetch history and reconcile it with pushes seen meanwhile."""
        self.log.begin_sync()
        history = await self.api.fetch_messages(self.room)
        self.log.reset(history)
        self.list_state = ListState.READY

    def apply_event(self, event: RealtimeEvent) -> None:
        if event.room != self.room:
            return
        if event.type == "insert" and event.message is not None:
            self.log.merge(event.message)
        elif event.type == "delete":
            self.log.remove(event.message_id)

    async def _consume(self) -> None:
        while self._mounted:
            subscription = self._subscription
            if subscription is not None:
                try:
                    async for event in subscription:
                        self.apply_event(event)
                except RealtimeError:
                    logger.warning(
                        "Realtime stream for %s failed", self.room.channel, exc_info=True
                    )
            if not self._mounted:
                return
            await self._sleep(self.reconnect_delay)
            await self._reconnect()

    async def _reconnect(self) -> None:
        previous, self._subscription = self._subscription, None
        if previous is not None:
            try:
                await previous.close()
            except RealtimeError:
                logger.warning(
                    "Closing stale subscription to %s failed", self.room.channel, exc_info=True
                )
        # Events published during the gap are gone; history is the only source.
        try:
            self._subscription = await self.broker.subscribe(self.room)
            await self.refresh()
        except (RealtimeError, ChatApiError):
            logger.warning("Reconnect to %s failed", self.room.channel, exc_info=True)
            return
        logger.info("Resubscribed to %s", self.room.channel)

    def start_countdown(self, seconds: int) -> None:
        """Count down locally once per tick; drift from the server is accepted."""
        if self._countdown_task is not None and not self._countdown_task.done():
            self._countdown_task.cancel()
        self.countdown = max(1, int(seconds))
        self._countdown_task = asyncio.create_task(self._run_countdown())

    async def _run_countdown(self) -> None:
        while self.countdown and self.countdown > 0:
            await self._sleep(self.tick_seconds)
            self.countdown -= 1
        self.countdown = None

    async def _session(self) -> ClientSession | SendOutcome:
        session = self.sessions.get_session()
        if session is not None:
            return session
        self._authenticating = True
        try:
            return await self.sessions.sign_in()
        except RuntimeError as exc:
            logger.info("Sign-in failed: %s", exc)
            return SendOutcome(ok=False, error=str(exc), code=Unauthenticated.code)
        finally:
            self._authenticating = False

    async def send(self, text: str) -> SendOutcome:
        """Send ``text`` if every local gate passes.

        The holder predicate is checked before any session or network work; a
        false answer refuses the send outright.
        """
        body = text.strip()
        if not body:
            return SendOutcome(
                ok=False, error="Message cannot be empty", code=ValidationFailed.code
            )
        if len(body) > settings.chat_max_message_length:
            return SendOutcome(
                ok=False,
                error=f"Message exceeds {settings.chat_max_message_length} character limit",
                code=ValidationFailed.code,
            )
        if self.countdown:
            return SendOutcome(
                ok=False,
                error=f"Please wait {self.countdown} seconds",
                code=RateLimited.code,
                wait_seconds=self.countdown,
            )

        address = self.sessions.signer.address
        if self.holders is not None and address:
            if await self.holders.can_chat(address, self.room) is False:
                return SendOutcome(
                    ok=False,
                    error="You must hold shares in this market to chat",
                    code=NotEligible.code,
                )

        session = await self._session()
        if isinstance(session, SendOutcome):
            return session

        result = await self.api.send_message(session, self.room, body)
        if result.success and result.message is not None:
            self.log.merge(result.message)
            return SendOutcome(ok=True, message=result.message)

        if result.rate_limited:
            self.start_countdown(result.wait_seconds or settings.chat_rate_limit_seconds)
        elif result.unauthenticated:
            self.sessions.sign_out()
        return SendOutcome(
            ok=False,
            error=result.error,
            code=result.code,
            wait_seconds=result.wait_seconds,
        )

    async def delete(self, message_id: str) -> SendOutcome:
        """Delete a message as an admin and drop it from the local list at once."""
        if not self.is_admin:
            return SendOutcome(
                ok=False,
                error="Unauthorized. Only admins can delete messages.",
                code=Forbidden.code,
            )
        session = await self._session()
        if isinstance(session, SendOutcome):
            return session

        result = await self.api.delete_message(session, message_id)
        if not result.success:
            if result.unauthenticated:
                self.sessions.sign_out()
            return SendOutcome(ok=False, error=result.error, code=result.code)
        self.log.remove(message_id)
        return SendOutcome(ok=True)
