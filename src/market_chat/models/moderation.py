# src/market_chat/models/moderation.py
"""Models tracking field-level moderation of markets."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from market_chat.db.session import Base
from market_chat.db.time import utcnow

HIDEABLE_FIELDS = ("name", "rules", "evidence", "image")


class ModeratedMarket(Base):
    """Overlay naming which public fields of a market are suppressed.

    Un-hiding flips ``is_active`` instead of deleting the row so the history of
    who moderated the market, and why, stays queryable.
    """

    __tablename__ = "moderated_market"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    market_id: Mapped[str] = mapped_column(Text, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    network: Mapped[str] = mapped_column(String(32), nullable=False)

    hidden_fields: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    moderated_by: Mapped[str] = mapped_column(String(42), nullable=False)
    moderated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "contract_address", "network", "market_id", name="uq_moderated_market_key"
        ),
    )
