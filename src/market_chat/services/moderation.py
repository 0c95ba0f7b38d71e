"""Field-level moderation overlay for markets."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from market_chat.core.errors import Forbidden, StorageError, ValidationFailed
from market_chat.core.settings import settings
from market_chat.db.time import utcnow
from market_chat.models import HIDEABLE_FIELDS, ModeratedMarket
from market_chat.services.chat import validate_network
from market_chat.services.rooms import MarketKey
from market_chat.services.siwe import SessionVerifier, SignedAssertion

logger = logging.getLogger(__name__)

ACTION_HIDE = "hide"
ACTION_UNHIDE = "unhide"

TEXT_PLACEHOLDER = "[Content Hidden by Moderator]"
LINK_PLACEHOLDER = "[Link Hidden]"
IMAGE_PLACEHOLDER = "CONTENT HIDDEN"

_PLACEHOLDERS = {
    "name": TEXT_PLACEHOLDER,
    "rules": TEXT_PLACEHOLDER,
    "evidence": LINK_PLACEHOLDER,
    "image": IMAGE_PLACEHOLDER,
}

FORBIDDEN_MODERATE = "Unauthorized. Only admins can moderate markets."


def hidden_placeholder(field: str) -> str:
    """Return the display text substituted for a hidden ``field``."""
    return _PLACEHOLDERS.get(field, TEXT_PLACEHOLDER)


def is_field_hidden_in(record: ModeratedMarket | None, field: str) -> bool:
    """True only for an active record that lists ``field``."""
    return bool(record is not None and record.is_active and field in (record.hidden_fields or []))


def normalize_hidden_fields(fields: Iterable[str] | None) -> list[str]:
    """Validate and de-duplicate fields, returned in canonical order.

    Raises:
        ValidationFailed: If ``fields`` is empty or names an unknown field.
    """
    requested = {field.strip().lower() for field in fields or [] if field and field.strip()}
    if not requested:
        raise ValidationFailed("At least one field must be hidden")
    unknown = sorted(requested.difference(HIDEABLE_FIELDS))
    if unknown:
        raise ValidationFailed(f"Invalid fields: {', '.join(unknown)}")
    return [field for field in HIDEABLE_FIELDS if field in requested]


class ModerationService:
    """Admin-only hide/unhide of market fields and the read-side redaction."""

    def __init__(
        self,
        db: Session,
        *,
        verifier: SessionVerifier | None = None,
        admin_addresses: Iterable[str] | None = None,
        allowed_networks: Iterable[str] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.verifier = verifier or SessionVerifier()
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

    def _filter(self, key: MarketKey):
        return select(ModeratedMarket).where(
            ModeratedMarket.contract_address == key.contract_address,
            ModeratedMarket.network == key.network,
            ModeratedMarket.market_id == key.market_id,
        )

    def get_record(self, key: MarketKey, include_inactive: bool = False) -> ModeratedMarket | None:
        """Return the market's record; inactive ones only when asked for."""
        try:
            record = self.db.execute(self._filter(key)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to load moderation for %s", key.channel, exc_info=True)
            raise StorageError("Failed to load moderation") from exc
        if record is None or (not record.is_active and not include_inactive):
            return None
        return record

    def get_records(
        self,
        network: str,
        contract_address: str,
        market_ids: Iterable[str],
    ) -> dict[str, ModeratedMarket]:
        """Batch lookup of active records, keyed by market id."""
        ids = sorted({str(market_id).strip() for market_id in market_ids if str(market_id).strip()})
        if not ids:
            return {}
        stmt = select(ModeratedMarket).where(
            ModeratedMarket.contract_address == contract_address.strip().lower(),
            ModeratedMarket.network == network.strip(),
            ModeratedMarket.market_id.in_(ids),
            ModeratedMarket.is_active.is_(True),
        )
        try:
            records = self.db.execute(stmt).scalars()
            return {record.market_id: record for record in records}
        except SQLAlchemyError as exc:
            logger.error("Failed to batch-load moderation on %s", network, exc_info=True)
            raise StorageError("Failed to load moderation") from exc

    def is_field_hidden(self, key: MarketKey, field: str) -> bool:
        return is_field_hidden_in(self.get_record(key), field)

    def apply_moderation(self, key: MarketKey, field: str, value: str | None) -> str | None:
        """Return ``value`` or the field's placeholder; never touches the market."""
        if self.is_field_hidden(key, field):
            return hidden_placeholder(field)
        return value

    def set_moderation(
        self,
        credentials: SignedAssertion,
        key: MarketKey,
        action: str,
        hidden_fields: Iterable[str] | None = None,
        reason: str | None = None,
    ) -> ModeratedMarket | None:
        """Hide fields of a market or lift its overlay.

        ``unhide`` keeps the row (hidden fields and reason included) and only
        deactivates it; unhiding a market with no record returns None.

        Raises:
            Unauthenticated: The assertion does not verify.
            Forbidden: The wallet is not on the admin allowlist.
            ValidationFailed: Unknown action, network or field list.
            StorageError: The record could not be written.
        """
        now = self.clock()
        credentials.verify_with(self.verifier, now)
        moderator = credentials.address.strip().lower()
        if moderator not in self.admin_addresses:
            raise Forbidden(FORBIDDEN_MODERATE)

        if action not in (ACTION_HIDE, ACTION_UNHIDE):
            raise ValidationFailed("Invalid action. Must be 'hide' or 'unhide'")
        validate_network(key.network, self.allowed_networks)

        if action == ACTION_HIDE:
            fields = normalize_hidden_fields(hidden_fields)
            record = self._hide(key, fields, reason, moderator, now)
        else:
            record = self._unhide(key, moderator, now)

        logger.info("Moderator %s applied %s to %s", moderator, action, key.channel)
        return record

    def _hide(
        self,
        key: MarketKey,
        fields: list[str],
        reason: str | None,
        moderator: str,
        now: datetime,
    ) -> ModeratedMarket:
        record = self.get_record(key, include_inactive=True)
        if record is None:
            record = ModeratedMarket(
                market_id=key.market_id,
                contract_address=key.contract_address,
                network=key.network,
            )
            self.db.add(record)
        record.hidden_fields = fields
        record.reason = reason
        record.moderated_by = moderator
        record.moderated_at = now
        record.is_active = True
        self._commit(record, key)
        return record

    def _unhide(self, key: MarketKey, moderator: str, now: datetime) -> ModeratedMarket | None:
        record = self.get_record(key, include_inactive=True)
        if record is None:
            return None
        record.is_active = False
        record.moderated_by = moderator
        record.moderated_at = now
        self._commit(record, key)
        return record

    def _commit(self, record: ModeratedMarket, key: MarketKey) -> None:
        try:
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to store moderation for %s", key.channel, exc_info=True)
            raise StorageError("Failed to moderate market") from exc
