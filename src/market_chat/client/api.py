"""HTTP client for the Market Chat API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from market_chat.client.session import ClientSession
from market_chat.schemas.chat import ChatMessageOut
from market_chat.schemas.moderation import ModerationRecordOut
from market_chat.services.rooms import MarketKey, RoomKey

logger = logging.getLogger(__name__)

CODE_NETWORK_ERROR = "NETWORK_ERROR"
CODE_UNAUTHENTICATED = "UNAUTHENTICATED"
CODE_RATE_LIMITED = "RATE_LIMITED"


class ChatApiError(RuntimeError):
    """Raised for read paths that cannot return a typed failure."""


@dataclass(frozen=True)
class ApiResult:
    """Typed outcome of a privileged call; failures are values, not exceptions."""

    success: bool
    message: ChatMessageOut | None = None
    moderation: ModerationRecordOut | None = None
    action: str | None = None
    error: str | None = None
    code: str | None = None
    wait_seconds: int | None = None

    @property
    def rate_limited(self) -> bool:
        return self.code == CODE_RATE_LIMITED

    @property
    def unauthenticated(self) -> bool:
        return self.code == CODE_UNAUTHENTICATED

    @classmethod
    def failure(cls, body: dict[str, Any]) -> ApiResult:
        wait = body.get("waitSeconds")
        return cls(
            success=False,
            error=body.get("error") or "Request failed",
            code=body.get("code"),
            wait_seconds=int(wait) if wait is not None else None,
        )


def _signed_fields(session: ClientSession) -> dict[str, str]:
    return {
        "siweMessage": session.message,
        "signature": session.signature,
        "address": session.address,
    }


class ChatApiClient:
    """Thin async wrapper over the ``/api/v1`` chat and moderation routes."""

    def __init__(
        self,
        base_url: str = "",
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("POST %s failed: %s", path, exc)
            return 0, {"success": False, "error": "Network error", "code": CODE_NETWORK_ERROR}
        try:
            body = response.json()
        except ValueError:
            body = {"success": False, "error": f"Unexpected response ({response.status_code})"}
        return response.status_code, body

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChatApiError(f"GET {path} failed: {exc}") from exc
        return response.json()

    async def send_message(
        self,
        session: ClientSession,
        room: RoomKey,
        message: str,
    ) -> ApiResult:
        _, body = await self._post(
            "/api/v1/chat/send-message",
            {
                **_signed_fields(session),
                "message": message,
                "marketId": room.market_id,
                "contractAddress": room.contract_address,
                "network": room.network,
            },
        )
        if not body.get("success"):
            return ApiResult.failure(body)
        return ApiResult(success=True, message=ChatMessageOut.model_validate(body["message"]))

    async def delete_message(self, session: ClientSession, message_id: str) -> ApiResult:
        _, body = await self._post(
            "/api/v1/chat/delete-message",
            {**_signed_fields(session), "messageId": message_id},
        )
        if not body.get("success"):
            return ApiResult.failure(body)
        return ApiResult(success=True)

    async def fetch_messages(
        self,
        room: RoomKey,
        limit: int | None = None,
        before: datetime | None = None,
    ) -> list[ChatMessageOut]:
        """Return the room's history, oldest first."""
        params: dict[str, Any] = {}
        if limit is not None:
            params["limit"] = limit
        if before is not None:
            params["before"] = before.isoformat()
        rows = await self._get(
            f"/api/v1/chat/rooms/{room.network}/{room.contract_address}/{room.market_id}/messages",
            params or None,
        )
        return [ChatMessageOut.model_validate(row) for row in rows]

    async def moderate_market(
        self,
        session: ClientSession,
        key: MarketKey,
        action: str,
        hidden_fields: list[str] | None = None,
        reason: str | None = None,
    ) -> ApiResult:
        payload: dict[str, Any] = {
            **_signed_fields(session),
            "marketId": key.market_id,
            "contractAddress": key.contract_address,
            "network": key.network,
            "action": action,
        }
        if hidden_fields is not None:
            payload["hiddenFields"] = hidden_fields
        if reason is not None:
            payload["reason"] = reason
        _, body = await self._post("/api/v1/moderation/moderate-market", payload)
        if not body.get("success"):
            return ApiResult.failure(body)
        moderation = body.get("moderation")
        return ApiResult(
            success=True,
            action=body.get("action"),
            moderation=ModerationRecordOut.model_validate(moderation) if moderation else None,
        )

    async def fetch_market_moderation(
        self,
        key: MarketKey,
        include_inactive: bool = False,
    ) -> ModerationRecordOut | None:
        body = await self._get(
            f"/api/v1/moderation/markets/{key.network}/{key.contract_address}/{key.market_id}",
            {"include_inactive": "true"} if include_inactive else None,
        )
        return ModerationRecordOut.model_validate(body) if body else None

    async def fetch_markets_moderation(
        self,
        network: str,
        contract_address: str,
        market_ids: list[str],
    ) -> dict[str, ModerationRecordOut]:
        """One round trip for every market shown in a list view."""
        if not market_ids:
            return {}
        body = await self._get(
            "/api/v1/moderation/markets",
            {
                "network": network,
                "contract_address": contract_address,
                "market_ids": ",".join(market_ids),
            },
        )
        return {
            market_id: ModerationRecordOut.model_validate(record)
            for market_id, record in body.items()
        }

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
