# mypy: ignore-errors
# tests/v1/test_moderation_api.py
"""Tests for the market moderation endpoints."""

from __future__ import annotations

from fastapi import status

from tests.conftest import CONTRACT, sign_assertion

MODERATE_URL = "/api/v1/moderation/moderate-market"
MARKET_URL = f"/api/v1/moderation/markets/bnb-testnet/{CONTRACT}"


def _moderate_payload(account, now, action: str, market_id: str = "7", **extra) -> dict:
    return {
        **sign_assertion(account, now),
        "marketId": market_id,
        "contractAddress": CONTRACT,
        "network": "bnb-testnet",
        "action": action,
        **extra,
    }


def test_hide_market_fields(client, admin_wallet, clock) -> None:
    response = client.post(
        MODERATE_URL,
        json=_moderate_payload(
            admin_wallet, clock.now, "hide", hiddenFields=["name", "image"], reason="spam"
        ),
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["success"] is True
    assert data["action"] == "hide"
    assert data["moderation"]["hidden_fields"] == ["name", "image"]
    assert data["moderation"]["reason"] == "spam"
    assert data["moderation"]["is_active"] is True

    record = client.get(f"{MARKET_URL}/7").json()
    assert record["hidden_fields"] == ["name", "image"]


def test_unhide_market(client, admin_wallet, clock) -> None:
    client.post(
        MODERATE_URL,
        json=_moderate_payload(admin_wallet, clock.now, "hide", hiddenFields=["rules"]),
    )

    response = client.post(MODERATE_URL, json=_moderate_payload(admin_wallet, clock.now, "unhide"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["moderation"]["is_active"] is False
    assert client.get(f"{MARKET_URL}/7").json() is None
    history = client.get(f"{MARKET_URL}/7", params={"include_inactive": True}).json()
    assert history["hidden_fields"] == ["rules"]


def test_unhide_unmoderated_market(client, admin_wallet, clock) -> None:
    response = client.post(MODERATE_URL, json=_moderate_payload(admin_wallet, clock.now, "unhide"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "Market was not moderated"
    assert response.json()["moderation"] is None


def test_moderation_requires_admin(client, wallet, clock) -> None:
    response = client.post(
        MODERATE_URL, json=_moderate_payload(wallet, clock.now, "hide", hiddenFields=["name"])
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "Unauthorized. Only admins can moderate markets."


def test_moderation_rejects_invalid_fields(client, admin_wallet, clock) -> None:
    response = client.post(
        MODERATE_URL,
        json=_moderate_payload(admin_wallet, clock.now, "hide", hiddenFields=["title"]),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Invalid fields: title"


def test_moderation_rejects_invalid_action(client, admin_wallet, clock) -> None:
    response = client.post(MODERATE_URL, json=_moderate_payload(admin_wallet, clock.now, "ban"))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Invalid action. Must be 'hide' or 'unhide'"


def test_moderation_missing_fields(client) -> None:
    response = client.post(MODERATE_URL, json={"action": "hide"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Missing required fields"


def test_batched_market_lookup(client, admin_wallet, clock) -> None:
    for market_id in ("1", "3"):
        client.post(
            MODERATE_URL,
            json=_moderate_payload(
                admin_wallet, clock.now, "hide", market_id=market_id, hiddenFields=["evidence"]
            ),
        )

    response = client.get(
        "/api/v1/moderation/markets",
        params={"network": "bnb-testnet", "contract_address": CONTRACT, "market_ids": "1,2,3"},
    )

    assert response.status_code == status.HTTP_200_OK
    assert sorted(response.json()) == ["1", "3"]
    assert response.json()["3"]["hidden_fields"] == ["evidence"]
