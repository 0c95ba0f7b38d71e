"""Tests for merging history fetches with live pushes."""

from datetime import UTC, datetime, timedelta

from market_chat.client.reconcile import MessageLog
from market_chat.schemas.chat import ChatMessageOut
from tests.conftest import CONTRACT

BASE = datetime(2026, 3, 14, 12, tzinfo=UTC)


def _message(message_id: str, offset: int = 0) -> ChatMessageOut:
    return ChatMessageOut(
        id=message_id,
        market_id="42",
        contract_address=CONTRACT.lower(),
        network="bnb-testnet",
        sender_address="0x" + "2" * 40,
        message=f"message {message_id}",
        created_at=BASE + timedelta(seconds=offset),
    )


def test_merge_is_idempotent() -> None:
    log = MessageLog()

    assert log.merge(_message("a")) is True
    assert log.merge(_message("a")) is False
    assert len(log) == 1


def test_messages_are_ordered_by_creation_then_id() -> None:
    log = MessageLog()
    log.merge(_message("c", 5))
    log.merge(_message("b", 0))
    log.merge(_message("a", 0))

    assert log.ids() == ["a", "b", "c"]


def test_remove_unknown_id_is_noop() -> None:
    log = MessageLog()
    log.merge(_message("a"))

    assert log.remove("zzz") is False
    assert log.ids() == ["a"]
    assert log.remove("a") is True
    assert "a" not in log


def test_reset_replaces_contents() -> None:
    log = MessageLog()
    log.merge(_message("stale"))

    log.reset([_message("a"), _message("b", 1)])

    assert log.ids() == ["a", "b"]


def test_reset_keeps_inserts_pushed_during_fetch() -> None:
    log = MessageLog()
    log.begin_sync()
    log.merge(_message("pushed", 10))

    log.reset([_message("a"), _message("b", 1)])

    assert log.ids() == ["a", "b", "pushed"]


def test_reset_does_not_duplicate_message_in_both_sources() -> None:
    log = MessageLog()
    log.begin_sync()
    log.merge(_message("gm", 3))

    log.reset([_message("gm", 3)])

    assert log.ids() == ["gm"]


def test_reset_applies_deletes_pushed_during_fetch() -> None:
    log = MessageLog()
    log.merge(_message("a"))
    log.begin_sync()
    log.remove("a")

    log.reset([_message("a"), _message("b", 1)])

    assert log.ids() == ["b"]


def test_sync_tracking_ends_after_reset() -> None:
    log = MessageLog()
    log.begin_sync()
    log.merge(_message("x"))
    log.reset([])

    assert log.ids() == ["x"]
    log.reset([])
    assert log.ids() == []
