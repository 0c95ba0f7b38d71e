"""Tests for sign-in assertion building, parsing and verification."""

from datetime import UTC, datetime, timedelta

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from market_chat.core.errors import Unauthenticated
from market_chat.services.siwe import (
    SessionVerifier,
    SiweMessage,
    build_siwe_message,
    generate_nonce,
)
from tests.conftest import TEST_NOW, credentials_for, sign_assertion


def test_generate_nonce_is_fresh_hex() -> None:
    first, second = generate_nonce(), generate_nonce()
    assert len(first) == 32
    int(first, 16)
    assert first != second


def test_prepare_and_parse_round_trip() -> None:
    account = Account.create()
    assertion = build_siwe_message(
        domain="markets.example",
        address=account.address,
        uri="https://markets.example",
        chain_id=56,
        statement="Sign in to chat.",
        nonce="abc123",
        issued_at=TEST_NOW,
        expiration_minutes=30,
    )
    text = assertion.prepare()

    assert text.startswith("markets.example wants you to sign in with your Ethereum account:\n")
    assert "Issued At: 2026-03-14T12:00:00.000Z" in text
    assert "Expiration Time: 2026-03-14T12:30:00.000Z" in text

    parsed = SiweMessage.parse(text)
    assert parsed.address == account.address
    assert parsed.statement == "Sign in to chat."
    assert parsed.chain_id == 56
    assert parsed.nonce == "abc123"
    assert parsed.issued_at == TEST_NOW
    assert parsed.expiration_time == TEST_NOW + timedelta(minutes=30)


def test_parse_rejects_missing_fields() -> None:
    text = (
        "markets.example wants you to sign in with your Ethereum account:\n"
        "0x0000000000000000000000000000000000000001\n\n"
        "URI: https://markets.example\nVersion: 1\nChain ID: 97"
    )
    with pytest.raises(ValueError, match="nonce"):
        SiweMessage.parse(text)


def test_parse_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        SiweMessage.parse("hello")


def test_verify_accepts_valid_assertion() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW)

    result = SessionVerifier().verify(
        fields["siweMessage"], fields["signature"], fields["address"], now=TEST_NOW
    )

    assert result.valid
    assert result.assertion is not None
    assert result.assertion.address == account.address


def test_verify_is_case_insensitive_on_address() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW, address=account.address.lower())

    assert SessionVerifier().verify(
        fields["siweMessage"], fields["signature"], fields["address"], now=TEST_NOW
    ).valid


def test_verify_rejects_other_signer() -> None:
    account, impostor = Account.create(), Account.create()
    fields = sign_assertion(account, TEST_NOW)

    result = SessionVerifier().verify(
        fields["siweMessage"], fields["signature"], impostor.address, now=TEST_NOW
    )

    assert not result.valid
    assert result.reason == "signature does not match address"


def test_verify_rejects_tampered_text() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW)
    tampered = fields["siweMessage"].replace("Chain ID: 97", "Chain ID: 56")

    result = SessionVerifier().verify(tampered, fields["signature"], account.address, now=TEST_NOW)

    assert not result.valid


def test_verify_rejects_malformed_signature() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW)

    result = SessionVerifier().verify(fields["siweMessage"], "0xzz", account.address, now=TEST_NOW)

    assert not result.valid
    assert result.reason == "malformed signature"


def test_verify_rejects_missing_credentials() -> None:
    assert not SessionVerifier().verify("", "", "", now=TEST_NOW).valid


def test_verify_tolerates_small_clock_skew() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW + timedelta(seconds=59))

    assert SessionVerifier().verify(
        fields["siweMessage"], fields["signature"], account.address, now=TEST_NOW
    ).valid


def test_verify_rejects_assertion_from_the_future() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW + timedelta(seconds=61))

    result = SessionVerifier().verify(
        fields["siweMessage"], fields["signature"], account.address, now=TEST_NOW
    )

    assert not result.valid
    assert result.reason == "assertion issued in the future"


def test_verify_rejects_expired_assertion() -> None:
    account = Account.create()
    fields = sign_assertion(account, TEST_NOW, expiration_minutes=10)

    result = SessionVerifier().verify(
        fields["siweMessage"],
        fields["signature"],
        account.address,
        now=TEST_NOW + timedelta(minutes=11),
    )

    assert not result.valid
    assert result.reason == "assertion expired"


def test_verify_rejects_assertion_naming_another_address() -> None:
    signer, named = Account.create(), Account.create()
    assertion = build_siwe_message(
        domain="markets.example",
        address=named.address,
        uri="https://markets.example",
        chain_id=97,
        issued_at=TEST_NOW,
    )
    signed = signer.sign_message(encode_defunct(text=assertion.prepare()))

    result = SessionVerifier().verify(
        assertion.prepare(), "0x" + bytes(signed.signature).hex(), signer.address, now=TEST_NOW
    )

    assert not result.valid
    assert result.reason == "assertion names a different address"


def test_require_raises_unauthenticated() -> None:
    account = Account.create()
    credentials = credentials_for(account, TEST_NOW, expiration_minutes=1)

    with pytest.raises(Unauthenticated) as exc_info:
        credentials.verify_with(SessionVerifier(), TEST_NOW + timedelta(minutes=5))

    assert exc_info.value.status_code == 401
    assert exc_info.value.to_payload() == {
        "success": False,
        "error": "Invalid signature",
        "code": "UNAUTHENTICATED",
    }


def test_require_returns_parsed_assertion() -> None:
    account = Account.create()
    credentials = credentials_for(account, TEST_NOW)

    assertion = credentials.verify_with(SessionVerifier(), TEST_NOW)

    assert assertion.issued_at == datetime(2026, 3, 14, 12, 0, tzinfo=UTC)
