"""Tests for realtime event fan-out."""

import asyncio
import json
from datetime import UTC, datetime

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from market_chat.schemas.chat import ChatMessageOut
from market_chat.services.realtime import (
    InMemoryBroker,
    RealtimeError,
    RealtimeEvent,
    RedisBroker,
)
from market_chat.services.rooms import RoomKey
from tests.conftest import CONTRACT


def _message(message_id: str, room: RoomKey, body: str = "gm") -> ChatMessageOut:
    return ChatMessageOut(
        id=message_id,
        market_id=room.market_id,
        contract_address=room.contract_address,
        network=room.network,
        sender_address="0x" + "1" * 40,
        message=body,
        created_at=datetime(2026, 3, 14, 12, tzinfo=UTC),
    )


async def _next(subscription):
    return await asyncio.wait_for(anext(aiter(subscription)), timeout=1)


def test_event_payload_round_trip(room) -> None:
    event = RealtimeEvent.insert(_message("m1", room))

    payload = json.loads(json.dumps(event.to_payload()))
    restored = RealtimeEvent.from_payload(payload)

    assert payload["type"] == "insert"
    assert payload["room"]["contract_address"] == CONTRACT.lower()
    assert restored == event


def test_delete_event_has_no_message(room) -> None:
    payload = RealtimeEvent.delete(room, "m1").to_payload()

    assert payload["message"] is None
    assert payload["message_id"] == "m1"


@pytest.mark.asyncio
async def test_every_subscriber_of_a_room_receives_events(room) -> None:
    broker = InMemoryBroker()
    first, second = await broker.subscribe(room), await broker.subscribe(room)

    await broker.publish(RealtimeEvent.insert(_message("m1", room)))

    assert (await _next(first)).message_id == "m1"
    assert (await _next(second)).message_id == "m1"
    await first.close()
    await second.close()


@pytest.mark.asyncio
async def test_rooms_are_isolated(room) -> None:
    broker = InMemoryBroker()
    other = RoomKey.of(room.market_id, room.contract_address, "bnb-mainnet")
    subscription = await broker.subscribe(other)

    await broker.publish(RealtimeEvent.insert(_message("m1", room)))
    await broker.publish(RealtimeEvent.delete(other, "m2"))

    event = await _next(subscription)
    assert event.type == "delete"
    assert event.message_id == "m2"
    await subscription.close()


@pytest.mark.asyncio
async def test_events_before_subscribing_are_not_replayed(room) -> None:
    broker = InMemoryBroker()
    await broker.publish(RealtimeEvent.insert(_message("early", room)))
    subscription = await broker.subscribe(room)
    await broker.publish(RealtimeEvent.insert(_message("late", room)))

    assert (await _next(subscription)).message_id == "late"
    await subscription.close()


@pytest.mark.asyncio
async def test_close_ends_iteration_and_detaches(room) -> None:
    broker = InMemoryBroker()
    subscription = await broker.subscribe(room)
    received = []

    async def consume() -> None:
        async for event in subscription:
            received.append(event)

    task = asyncio.create_task(consume())
    await broker.publish(RealtimeEvent.delete(room, "m1"))
    await asyncio.sleep(0)
    await subscription.close()
    await asyncio.wait_for(task, timeout=1)

    assert [event.message_id for event in received] == ["m1"]
    assert broker.subscriber_count(room) == 0
    await broker.publish(RealtimeEvent.delete(room, "m2"))
    assert [event async for event in subscription] == []


@pytest.mark.asyncio
async def test_redis_broker_publishes_json(room, mocker) -> None:
    client = mocker.AsyncMock()
    broker = RedisBroker(client=client)

    await broker.publish(RealtimeEvent.delete(room, "m1"))

    channel, data = client.publish.await_args.args
    assert channel == room.channel
    assert json.loads(data)["message_id"] == "m1"


@pytest.mark.asyncio
async def test_redis_publish_failure_becomes_realtime_error(room, mocker) -> None:
    client = mocker.AsyncMock()
    client.publish.side_effect = RedisConnectionError("refused")
    broker = RedisBroker(client=client)

    with pytest.raises(RealtimeError):
        await broker.publish(RealtimeEvent.delete(room, "m1"))


@pytest.mark.asyncio
async def test_redis_subscription_decodes_messages(room, mocker) -> None:
    payload = json.dumps(RealtimeEvent.delete(room, "m9").to_payload())

    async def listen():
        yield {"type": "subscribe", "data": 1}
        yield {"type": "message", "data": "not json"}
        yield {"type": "message", "data": payload}

    pubsub = mocker.AsyncMock()
    pubsub.listen = listen
    client = mocker.MagicMock()
    client.pubsub.return_value = pubsub
    broker = RedisBroker(client=client)

    subscription = await broker.subscribe(room)
    events = [event async for event in subscription]

    pubsub.subscribe.assert_awaited_once_with(room.channel)
    assert [event.message_id for event in events] == ["m9"]
    await subscription.close()
    pubsub.unsubscribe.assert_awaited_once_with(room.channel)


@pytest.mark.asyncio
async def test_redis_subscription_releases_connection_when_lost(room, mocker) -> None:
    async def listen():
        yield {"type": "subscribe", "data": 1}
        raise RedisConnectionError("connection reset")

    pubsub = mocker.AsyncMock()
    pubsub.listen = listen
    client = mocker.MagicMock()
    client.pubsub.return_value = pubsub
    subscription = await RedisBroker(client=client).subscribe(room)

    with pytest.raises(RealtimeError):
        async for _ in subscription:
            pass

    pubsub.aclose.assert_awaited_once()
    await subscription.close()
    pubsub.unsubscribe.assert_not_awaited()
    pubsub.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_close_releases_connection_when_unsubscribe_fails(room, mocker) -> None:
    pubsub = mocker.AsyncMock()
    pubsub.unsubscribe.side_effect = RedisConnectionError("gone")
    client = mocker.MagicMock()
    client.pubsub.return_value = pubsub
    subscription = await RedisBroker(client=client).subscribe(room)

    with pytest.raises(RealtimeError):
        await subscription.close()

    pubsub.aclose.assert_awaited_once()
