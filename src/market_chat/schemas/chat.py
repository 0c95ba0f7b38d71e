# src/market_chat/schemas/chat.py
"""Chat-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from market_chat.core.settings import settings
from market_chat.db.time import as_utc


class SignedRequest(BaseModel):
    """Sign-in assertion fields carried by every privileged request."""

    siwe_message: str = Field(
        ..., min_length=1, alias="siweMessage", description="Signed assertion text"
    )
    signature: str = Field(..., min_length=1, description="Hex-encoded wallet signature")
    address: str = Field(..., min_length=1, description="Claimed wallet address")

    model_config = ConfigDict(populate_by_name=True)


class SendMessageRequest(SignedRequest):
    """Schema for posting a message into a market's room."""

    message: str = Field(
        ...,
        min_length=1,
        max_length=settings.chat_max_raw_message_length,
        description="Raw message text; sanitized before storage",
    )
    market_id: str = Field(..., min_length=1, alias="marketId")
    contract_address: str = Field(..., min_length=1, alias="contractAddress")
    network: str = Field(..., min_length=1)


class DeleteMessageRequest(SignedRequest):
    """Schema for an admin removing a message."""

    message_id: str = Field(..., min_length=1, alias="messageId")


class ChatMessageOut(BaseModel):
    """Schema for chat messages returned by the API and realtime stream."""

    id: str
    market_id: str
    contract_address: str
    network: str
    sender_address: str
    message: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    model_config = ConfigDict(from_attributes=True)


class SendMessageResponse(BaseModel):
    """Successful send result."""

    success: Literal[True] = True
    message: ChatMessageOut


class DeleteMessageResponse(BaseModel):
    """Successful (possibly no-op) delete result."""

    success: Literal[True] = True
