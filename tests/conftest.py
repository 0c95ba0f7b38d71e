# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from market_chat.api.v1.dependencies import get_admin_addresses, get_clock
from market_chat.db.session import Base
from market_chat.db.session import get_db as app_get_session
from market_chat.main import app as fastapi_app
from market_chat.services.eligibility import get_holder_predicate
from market_chat.services.realtime import InMemoryBroker, get_realtime_broker
from market_chat.services.rooms import RoomKey
from market_chat.services.siwe import SignedAssertion, build_siwe_message

TEST_DB_URL = "sqlite://"
TEST_NOW = datetime(2026, 3, 14, 12, 0, 0, tzinfo=UTC)
CONTRACT = "0x7D5c0a0A1f3B6e2e2C7aB1d4b6E2f0A9c3D8e1F2"


class FakeClock:
    """Settable clock shared by the app and the test."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeHolders:
    """Holder predicate with a fixed answer that records its calls."""

    def __init__(self, answer: bool | None = True) -> None:
        self.answer = answer
        self.calls: list[tuple[str, RoomKey]] = []

    async def can_chat(self, address: str, room: RoomKey) -> bool | None:
        self.calls.append((address, room))
        return self.answer

    async def close(self) -> None:
        return None


def sign_assertion(
    account: LocalAccount,
    issued_at: datetime,
    *,
    expiration_minutes: int = 60 * 24,
    address: str | None = None,
) -> dict[str, str]:
    """Return the signed request fields for ``account`` as the API expects them."""
    assertion = build_siwe_message(
        domain="markets.example",
        address=account.address,
        uri="https://markets.example",
        chain_id=97,
        issued_at=issued_at,
        expiration_minutes=expiration_minutes,
    )
    text = assertion.prepare()
    signed = account.sign_message(encode_defunct(text=text))
    return {
        "siweMessage": text,
        "signature": "0x" + bytes(signed.signature).hex(),
        "address": address or account.address,
    }


def credentials_for(account: LocalAccount, issued_at: datetime, **kwargs: Any) -> SignedAssertion:
    fields = sign_assertion(account, issued_at, **kwargs)
    return SignedAssertion(fields["siweMessage"], fields["signature"], fields["address"])


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(TEST_NOW)


@pytest.fixture()
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture()
def holders() -> FakeHolders:
    return FakeHolders(answer=True)


@pytest.fixture()
def wallet() -> LocalAccount:
    return Account.create()


@pytest.fixture()
def other_wallet() -> LocalAccount:
    return Account.create()


@pytest.fixture()
def admin_wallet() -> LocalAccount:
    return Account.create()


@pytest.fixture()
def admins(admin_wallet: LocalAccount) -> frozenset[str]:
    return frozenset({admin_wallet.address.lower()})


@pytest.fixture()
def room() -> RoomKey:
    return RoomKey.of("42", CONTRACT, "bnb-testnet")


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    clock: FakeClock,
    broker: InMemoryBroker,
    holders: FakeHolders,
    admins: frozenset[str],
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    overrides = {
        app_get_session: _get_session_override,
        get_clock: lambda: clock,
        get_realtime_broker: lambda: broker,
        get_holder_predicate: lambda: holders,
        get_admin_addresses: lambda: admins,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
