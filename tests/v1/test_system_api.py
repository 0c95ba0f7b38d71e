# mypy: ignore-errors
# tests/v1/test_system_api.py
"""Tests for the public configuration endpoint."""

from fastapi import status

from market_chat.core.settings import settings


def test_public_config(client) -> None:
    response = client.get("/api/v1/system/config")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["app"]["name"] == settings.app_name
    assert data["chat"]["networks"] == ["bnb-testnet", "bnb-mainnet"]
    assert data["chat"]["rate_limit_seconds"] == 60
    assert data["chat"]["max_message_length"] == 500
    assert data["siwe"]["session_minutes"] == settings.siwe_session_minutes


def test_public_config_hides_secrets(client) -> None:
    body = client.get("/api/v1/system/config").text

    assert "admin" not in body.lower()
    assert settings.redis_url not in body
