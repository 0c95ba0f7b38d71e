"""Read-side redaction of market fields for list and detail views."""

from __future__ import annotations

from collections.abc import Mapping

from market_chat.schemas.moderation import ModerationRecordOut
from market_chat.services.moderation import hidden_placeholder, is_field_hidden_in


class MarketModerationView:
    """Overlay lookups over a batch of moderation records keyed by market id.

    Values are substituted at display time only, so lifting a hide shows the
    original text again without anything to restore.
    """

    def __init__(self, records: Mapping[str, ModerationRecordOut] | None = None) -> None:
        self._records = dict(records or {})

    def update(self, market_id: str, record: ModerationRecordOut | None) -> None:
        if record is None or not record.is_active:
            self._records.pop(market_id, None)
        else:
            self._records[market_id] = record

    def record(self, market_id: str) -> ModerationRecordOut | None:
        return self._records.get(market_id)

    def is_hidden(self, market_id: str, field: str) -> bool:
        return is_field_hidden_in(self._records.get(market_id), field)

    def placeholder(self, field: str) -> str:
        return hidden_placeholder(field)

    def apply(self, market_id: str, field: str, value: str | None) -> str | None:
        if self.is_hidden(market_id, field):
            return hidden_placeholder(field)
        return value
