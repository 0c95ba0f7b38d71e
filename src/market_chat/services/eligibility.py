"""Holder/creator eligibility for posting into a market's room.

A wallet may chat when it created the market or when its YES and NO shares
together reach ``MIN_SHARES_TO_CHAT``. Position data comes from the
network's subgraph; when the lookup itself fails the answer is "unknown"
(``None``) and callers decide how to degrade.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from market_chat.core.settings import settings
from market_chat.services.rooms import RoomKey

logger = logging.getLogger(__name__)

HTTP_OK = 200

_POSITION_QUERY = """
query ChatEligibility($marketId: ID!, $positionId: ID!) {
  market(id: $marketId) {
    creatorAddress
  }
  position(id: $positionId) {
    yesShares
    noShares
  }
}
"""


class HolderPredicate(Protocol):
    """Answers whether a wallet may chat in a room."""

    async def can_chat(self, address: str, room: RoomKey) -> bool | None:
        """Return True/False, or None when eligibility cannot be determined."""
        ...


def has_enough_shares(yes_shares: int, no_shares: int, minimum: int | None = None) -> bool:
    """Return True if YES and NO shares together meet the minimum."""
    threshold = minimum if minimum is not None else settings.min_shares_to_chat
    return yes_shares + no_shares >= threshold


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class SubgraphHolderPredicate:
    """Eligibility backed by the prediction-market subgraph GraphQL API."""

    def __init__(
        self,
        urls: dict[str, str] | None = None,
        *,
        minimum_shares: int | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.urls = urls if urls is not None else settings.subgraph_urls
        self.minimum_shares = (
            minimum_shares if minimum_shares is not None else settings.min_shares_to_chat
        )
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.subgraph_timeout_seconds
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def _query(self, url: str, variables: dict[str, str]) -> dict[str, Any] | None:
        client = await self._ensure_client()
        try:
            response = await client.post(
                url, json={"query": _POSITION_QUERY, "variables": variables}
            )
        except httpx.HTTPError as exc:
            logger.warning("Subgraph request to %s failed: %s", url, exc)
            return None

        if response.status_code != HTTP_OK:
            logger.warning("Subgraph at %s responded with %s", url, response.status_code)
            return None
        try:
            body = response.json()
        except ValueError:
            logger.warning("Subgraph at %s returned a non-JSON body", url)
            return None
        if body.get("errors"):
            logger.warning("Subgraph query errors: %s", body["errors"])
            return None
        return body.get("data") or {}

    async def can_chat(self, address: str, room: RoomKey) -> bool | None:
        url = self.urls.get(room.network)
        if not url:
            logger.debug("No subgraph configured for network %s", room.network)
            return None

        wallet = address.lower()
        data = await self._query(
            url,
            {"marketId": room.market_id, "positionId": f"{room.market_id}-{wallet}"},
        )
        if data is None:
            return None

        market = data.get("market") or {}
        creator = str(market.get("creatorAddress") or "").lower()
        if creator and creator == wallet:
            return True

        position = data.get("position") or {}
        return has_enough_shares(
            _as_int(position.get("yesShares")),
            _as_int(position.get("noShares")),
            self.minimum_shares,
        )

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _HolderPredicateSingleton:
    _instance: SubgraphHolderPredicate | None = None

    @classmethod
    def get_instance(cls) -> SubgraphHolderPredicate:
        if cls._instance is None:
            cls._instance = SubgraphHolderPredicate()
        return cls._instance


def get_holder_predicate() -> HolderPredicate:
    """Return the process-wide eligibility predicate."""
    return _HolderPredicateSingleton.get_instance()
