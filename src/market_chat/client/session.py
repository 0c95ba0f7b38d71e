"""Client-side sign-in sessions.

A session is a signed assertion cached on the viewer's device until it
expires. Nothing is stored server-side; the cached triple is re-sent with
every privileged call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from market_chat.core.settings import settings
from market_chat.db.time import utcnow
from market_chat.services.siwe import build_siwe_message

logger = logging.getLogger(__name__)


class WalletSigner(Protocol):
    """The connected wallet: reports its address and signs text."""

    @property
    def address(self) -> str | None:
        """Currently connected address, or None when disconnected."""
        ...

    @property
    def chain_id(self) -> int: ...

    async def sign_message(self, text: str) -> str:
        """Return a hex ``personal_sign`` signature over ``text``."""
        ...


class LocalWalletSigner:
    """Signer backed by a local private key."""

    def __init__(self, account: LocalAccount, chain_id: int = 97) -> None:
        self.account = account
        self._chain_id = chain_id

    @classmethod
    def create(cls, chain_id: int = 97) -> LocalWalletSigner:
        return cls(Account.create(), chain_id)

    @property
    def address(self) -> str | None:
        return self.account.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    async def sign_message(self, text: str) -> str:
        signed = self.account.sign_message(encode_defunct(text=text))
        return "0x" + bytes(signed.signature).hex()


@dataclass(frozen=True)
class ClientSession:
    """A cached, signed sign-in assertion."""

    address: str
    message: str
    signature: str
    issued_at: datetime
    expires_at: datetime

    def is_valid(self, now: datetime, address: str | None = None) -> bool:
        if now >= self.expires_at:
            return False
        return address is None or address.lower() == self.address.lower()


class SessionManager:
    """Issues and caches sessions for one connected wallet."""

    def __init__(
        self,
        signer: WalletSigner,
        *,
        domain: str,
        uri: str,
        statement: str | None = None,
        session_minutes: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.signer = signer
        self.domain = domain
        self.uri = uri
        self.statement = statement
        self.session_minutes = (
            session_minutes if session_minutes is not None else settings.siwe_session_minutes
        )
        self.clock = clock
        self._session: ClientSession | None = None

    def get_session(self) -> ClientSession | None:
        """Return the cached session if it is unexpired and for the connected wallet."""
        session = self._session
        if session is None:
            return None
        if not session.is_valid(self.clock(), self.signer.address):
            logger.debug("Dropping stale session for %s", session.address)
            self._session = None
            return None
        return session

    async def sign_in(self) -> ClientSession:
        """Build a fresh assertion, have the wallet sign it and cache the result.

        Raises:
            RuntimeError: If no wallet is connected.
        """
        address = self.signer.address
        if not address:
            raise RuntimeError("Wallet not connected")

        issued_at = self.clock()
        assertion = build_siwe_message(
            domain=self.domain,
            address=address,
            uri=self.uri,
            chain_id=self.signer.chain_id,
            statement=self.statement,
            issued_at=issued_at,
            expiration_minutes=self.session_minutes,
        )
        text = assertion.prepare()
        signature = await self.signer.sign_message(text)
        self._session = ClientSession(
            address=address,
            message=text,
            signature=signature,
            issued_at=issued_at,
            expires_at=assertion.expiration_time
            or issued_at + timedelta(minutes=self.session_minutes),
        )
        return self._session

    async def ensure_session(self) -> ClientSession:
        return self.get_session() or await self.sign_in()

    def sign_out(self) -> None:
        self._session = None
