"""Realtime fan-out of chat inserts and deletes.

The service publishes one event per stored or removed message on the room's
channel. Delivery is at-most-once and unbuffered: a subscriber that was not
connected when an event went out never sees it, so clients resynchronize by
re-fetching history after reconnecting.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from market_chat.core.settings import settings
from market_chat.schemas.chat import ChatMessageOut
from market_chat.services.rooms import RoomKey

logger = logging.getLogger(__name__)

EventType = Literal["insert", "delete"]


class RealtimeError(RuntimeError):
    """Raised when an event could not be handed to the distributor."""


@dataclass(frozen=True)
class RealtimeEvent:
    """A single insert or delete observed on a room."""

    type: EventType
    room: RoomKey
    message_id: str
    message: ChatMessageOut | None = None

    @classmethod
    def insert(cls, message: ChatMessageOut) -> RealtimeEvent:
        room = RoomKey.of(message.market_id, message.contract_address, message.network)
        return cls(type="insert", room=room, message_id=message.id, message=message)

    @classmethod
    def delete(cls, room: RoomKey, message_id: str) -> RealtimeEvent:
        return cls(type="delete", room=room, message_id=message_id)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "room": {
                "market_id": self.room.market_id,
                "contract_address": self.room.contract_address,
                "network": self.room.network,
            },
            "message_id": self.message_id,
            "message": self.message.model_dump(mode="json") if self.message else None,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RealtimeEvent:
        room = payload["room"]
        message = payload.get("message")
        return cls(
            type=payload["type"],
            room=RoomKey.of(room["market_id"], room["contract_address"], room["network"]),
            message_id=payload["message_id"],
            message=ChatMessageOut.model_validate(message) if message else None,
        )


class Subscription(Protocol):
    """Async stream of events for one room; ``close`` ends the stream."""

    def __aiter__(self) -> AsyncIterator[RealtimeEvent]: ...

    async def close(self) -> None: ...


class RealtimeBroker(Protocol):
    """Publish/subscribe capability used by the service and by clients."""

    async def publish(self, event: RealtimeEvent) -> None: ...

    async def subscribe(self, room: RoomKey) -> Subscription: ...

    async def close(self) -> None: ...


_CLOSED = object()


class _QueueSubscription:
    def __init__(self, broker: InMemoryBroker, channel: str) -> None:
        self._broker = broker
        self._channel = channel
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    def _deliver(self, event: RealtimeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[RealtimeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RealtimeEvent]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._detach(self._channel, self)
        self._queue.put_nowait(_CLOSED)


class InMemoryBroker:
    """Process-local broker; every subscriber of a channel gets every event."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[_QueueSubscription]] = defaultdict(set)

    def subscriber_count(self, room: RoomKey) -> int:
        return len(self._subscribers.get(room.channel, ()))

    async def publish(self, event: RealtimeEvent) -> None:
        for subscription in list(self._subscribers.get(event.room.channel, ())):
            subscription._deliver(event)

    async def subscribe(self, room: RoomKey) -> _QueueSubscription:
        subscription = _QueueSubscription(self, room.channel)
        self._subscribers[room.channel].add(subscription)
        return subscription

    def _detach(self, channel: str, subscription: _QueueSubscription) -> None:
        subscribers = self._subscribers.get(channel)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            self._subscribers.pop(channel, None)

    async def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                await subscription.close()


class _RedisSubscription:
    def __init__(self, pubsub: Any, channel: str) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._closed = False

    def __aiter__(self) -> AsyncIterator[RealtimeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RealtimeEvent]:
        try:
            async for raw in self._pubsub.listen():
                if self._closed:
                    return
                if raw.get("type") != "message":
                    continue
                try:
                    event = RealtimeEvent.from_payload(json.loads(raw["data"]))
                except (KeyError, ValueError) as exc:
                    logger.warning(
                        "Dropping malformed realtime payload on %s: %s", self._channel, exc
                    )
                    continue
                yield event
        except (RedisError, OSError) as exc:
            if self._closed:
                return
            self._closed = True
            await self._pubsub.aclose()
            raise RealtimeError(f"Subscription to {self._channel} lost: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self._channel)
        except (RedisError, OSError) as exc:
            raise RealtimeError(f"Unsubscribe from {self._channel} failed: {exc}") from exc
        finally:
            await self._pubsub.aclose()


class RedisBroker:
    """Broker backed by Redis pub/sub so several API workers share rooms."""

    def __init__(self, url: str | None = None, client: Any | None = None) -> None:
        self._redis = client or aioredis.from_url(url or settings.redis_url, decode_responses=True)

    async def publish(self, event: RealtimeEvent) -> None:
        try:
            await self._redis.publish(event.room.channel, json.dumps(event.to_payload()))
        except (RedisError, OSError) as exc:
            raise RealtimeError(f"Publish to {event.room.channel} failed: {exc}") from exc

    async def subscribe(self, room: RoomKey) -> _RedisSubscription:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(room.channel)
        except (RedisError, OSError) as exc:
            raise RealtimeError(f"Subscribe to {room.channel} failed: {exc}") from exc
        return _RedisSubscription(pubsub, room.channel)

    async def close(self) -> None:
        await self._redis.aclose()


@lru_cache(maxsize=1)
def get_realtime_broker() -> RealtimeBroker:
    """Return the process-wide broker selected by ``REALTIME_BACKEND``."""
    if settings.realtime_backend == "redis":
        return RedisBroker()
    return InMemoryBroker()
