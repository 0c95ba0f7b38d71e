"""Local message list reconciliation.

History fetches and live pushes are both first-class inputs. Entries are
kept in an arena keyed by id, so the same message arriving twice (fetch and
push racing, or the sender's own response and its push) is stored once.
"""

from __future__ import annotations

from market_chat.db.time import as_utc
from market_chat.schemas.chat import ChatMessageOut


def _order(message: ChatMessageOut) -> tuple:
    return (as_utc(message.created_at), message.id)


class MessageLog:
    """Messages of one room, unique by id and ordered by creation time."""

    def __init__(self) -> None:
        self._by_id: dict[str, ChatMessageOut] = {}
        # Pushes seen while a history fetch is in flight.
        self._pushed: set[str] | None = None
        self._removed: set[str] | None = None

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    @property
    def messages(self) -> list[ChatMessageOut]:
        return sorted(self._by_id.values(), key=_order)

    def ids(self) -> list[str]:
        return [message.id for message in self.messages]

    def merge(self, message: ChatMessageOut) -> bool:
        """Add ``message`` unless its id is already known; return True if added."""
        if self._pushed is not None:
            self._pushed.add(message.id)
            if self._removed is not None:
                self._removed.discard(message.id)
        if message.id in self._by_id:
            return False
        self._by_id[message.id] = message
        return True

    def remove(self, message_id: str) -> bool:
        """Drop ``message_id``; unknown ids are ignored."""
        if self._removed is not None:
            self._removed.add(message_id)
        return self._by_id.pop(message_id, None) is not None

    def begin_sync(self) -> None:
        """Start recording pushes so a following :meth:`reset` can replay them."""
        self._pushed = set()
        self._removed = set()

    def reset(self, history: list[ChatMessageOut]) -> None:
        """Replace the log with a fresh history fetch.

        Inserts pushed since :meth:`begin_sync` survive even if the fetch
        missed them, and deletes pushed since then win over the fetch.
        """
        pushed = self._pushed or set()
        removed = self._removed or set()
        fresh = {message.id: message for message in history if message.id not in removed}
        for message_id in pushed:
            if message_id not in fresh and message_id in self._by_id:
                fresh[message_id] = self._by_id[message_id]
        self._by_id = fresh
        self._pushed = None
        self._removed = None
