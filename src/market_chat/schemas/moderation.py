# src/market_chat/schemas/moderation.py
"""Moderation-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from market_chat.db.time import as_utc
from market_chat.schemas.chat import SignedRequest


class ModerateMarketRequest(SignedRequest):
    """Schema for hiding or unhiding fields of a market."""

    market_id: str = Field(..., min_length=1, alias="marketId")
    contract_address: str = Field(..., min_length=1, alias="contractAddress")
    network: str = Field(..., min_length=1)
    action: str = Field(..., description="Either 'hide' or 'unhide'")
    hidden_fields: list[str] | None = Field(None, alias="hiddenFields")
    reason: str | None = Field(None, max_length=1000)


class ModerationRecordOut(BaseModel):
    """Schema for a market's moderation overlay."""

    id: str
    market_id: str
    contract_address: str
    network: str
    hidden_fields: list[str]
    reason: str | None
    moderated_by: str
    moderated_at: datetime
    is_active: bool

    @field_validator("moderated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    model_config = ConfigDict(from_attributes=True)


class ModerateMarketResponse(BaseModel):
    """Result of a moderation action."""

    success: bool = True
    action: str
    moderation: ModerationRecordOut | None = None
    message: str | None = None
