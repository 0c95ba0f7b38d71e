# src/market_chat/api/v1/endpoints/moderation.py
"""Market moderation endpoints for the Market Chat API."""

from __future__ import annotations

from fastapi import APIRouter, Query

from market_chat.api.v1.dependencies import ModerationServiceDep
from market_chat.schemas.moderation import (
    ModerateMarketRequest,
    ModerateMarketResponse,
    ModerationRecordOut,
)
from market_chat.services.moderation import ACTION_UNHIDE
from market_chat.services.rooms import MarketKey
from market_chat.services.siwe import SignedAssertion

router = APIRouter(prefix="/moderation", tags=["moderation"])


@router.post("/moderate-market", response_model=ModerateMarketResponse)
async def moderate_market(
    payload: ModerateMarketRequest,
    service: ModerationServiceDep,
) -> ModerateMarketResponse:
    """Hide fields of a market, or lift an existing overlay (admins only)."""
    record = service.set_moderation(
        SignedAssertion(payload.siwe_message, payload.signature, payload.address),
        MarketKey.of(payload.market_id, payload.contract_address, payload.network),
        payload.action,
        payload.hidden_fields,
        payload.reason,
    )
    if record is None and payload.action == ACTION_UNHIDE:
        return ModerateMarketResponse(action=payload.action, message="Market was not moderated")
    return ModerateMarketResponse(
        action=payload.action,
        moderation=ModerationRecordOut.model_validate(record),
    )


@router.get("/markets", response_model=dict[str, ModerationRecordOut])
async def get_markets_moderation(
    service: ModerationServiceDep,
    network: str = Query(...),
    contract_address: str = Query(...),
    market_ids: str = Query(..., description="Comma separated market ids"),
) -> dict[str, ModerationRecordOut]:
    """Batched lookup of active overlays for a list view of markets."""
    records = service.get_records(network, contract_address, market_ids.split(","))
    return {
        market_id: ModerationRecordOut.model_validate(record)
        for market_id, record in records.items()
    }


@router.get(
    "/markets/{network}/{contract_address}/{market_id}",
    response_model=ModerationRecordOut | None,
)
async def get_market_moderation(
    network: str,
    contract_address: str,
    market_id: str,
    service: ModerationServiceDep,
    include_inactive: bool = Query(False),
) -> ModerationRecordOut | None:
    """Return the market's overlay, or null when nothing is hidden."""
    record = service.get_record(
        MarketKey.of(market_id, contract_address, network),
        include_inactive=include_inactive,
    )
    if record is None:
        return None
    return ModerationRecordOut.model_validate(record)
