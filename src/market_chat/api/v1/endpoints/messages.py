# src/market_chat/api/v1/endpoints/messages.py
"""Market chat endpoints: send, delete, history and the live stream."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from market_chat.api.v1.dependencies import BrokerDep, ChatServiceDep
from market_chat.core.settings import settings
from market_chat.schemas.chat import (
    ChatMessageOut,
    DeleteMessageRequest,
    DeleteMessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from market_chat.services.chat import validate_network
from market_chat.services.rooms import RoomKey
from market_chat.services.siwe import SignedAssertion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(
    payload: SendMessageRequest,
    service: ChatServiceDep,
) -> SendMessageResponse:
    """Post a message into a market's room.

    Failures come back as ``{"success": false, "error", "code"}`` with the
    status of the matching service error; rate limiting adds ``waitSeconds``.
    """
    message = await service.send(
        SignedAssertion(payload.siwe_message, payload.signature, payload.address),
        RoomKey.of(payload.market_id, payload.contract_address, payload.network),
        payload.message,
    )
    return SendMessageResponse(message=ChatMessageOut.model_validate(message))


@router.post("/delete-message", response_model=DeleteMessageResponse)
async def delete_message(
    payload: DeleteMessageRequest,
    service: ChatServiceDep,
) -> DeleteMessageResponse:
    """Remove a message permanently (admins only)."""
    await service.delete(
        SignedAssertion(payload.siwe_message, payload.signature, payload.address),
        payload.message_id,
    )
    return DeleteMessageResponse()


@router.get(
    "/rooms/{network}/{contract_address}/{market_id}/messages",
    response_model=list[ChatMessageOut],
)
async def list_messages(
    network: str,
    contract_address: str,
    market_id: str,
    service: ChatServiceDep,
    limit: int = Query(settings.chat_history_limit, ge=1, le=500),
    before: datetime | None = Query(None),
) -> list[ChatMessageOut]:
    """Return the room's most recent messages in ascending creation order."""
    validate_network(network)
    room = RoomKey.of(market_id, contract_address, network)
    return [ChatMessageOut.model_validate(row) for row in service.history(room, limit, before)]


@router.websocket("/rooms/{network}/{contract_address}/{market_id}/stream")
async def stream_room(
    websocket: WebSocket,
    network: str,
    contract_address: str,
    market_id: str,
    broker: BrokerDep,
) -> None:
    """Push insert/delete events for one room until the viewer disconnects.

    Nothing is replayed: events published before the subscription opened are
    not delivered, so viewers fetch history after connecting.
    """
    if network not in settings.allowed_networks:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    room = RoomKey.of(market_id, contract_address, network)
    subscription = await broker.subscribe(room)
    await websocket.accept()

    async def _watch_disconnect() -> None:
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Viewer left %s", room.channel)
        finally:
            await subscription.close()

    watcher = asyncio.create_task(_watch_disconnect())
    try:
        async for event in subscription:
            await websocket.send_json(event.to_payload())
    except WebSocketDisconnect:
        logger.debug("Viewer dropped from %s mid-send", room.channel)
    finally:
        watcher.cancel()
        await subscription.close()
