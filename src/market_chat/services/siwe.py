"""Sign-In-With-Ethereum assertions.

A session is nothing more than a human-readable assertion signed by the
wallet. The server keeps no session state: every privileged call carries the
assertion and its signature, and :class:`SessionVerifier` re-checks both.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from eth_account import Account
from eth_account.messages import encode_defunct

from market_chat.core.errors import Unauthenticated
from market_chat.core.settings import settings
from market_chat.db.time import utcnow

logger = logging.getLogger(__name__)

_HEADER_SUFFIX = " wants you to sign in with your Ethereum account:"
_HEADER_RE = re.compile(r"^(?P<domain>\S+) wants you to sign in with your Ethereum account:$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_FIELD_PREFIXES = {
    "URI: ": "uri",
    "Version: ": "version",
    "Chain ID: ": "chain_id",
    "Nonce: ": "nonce",
    "Issued At: ": "issued_at",
    "Expiration Time: ": "expiration_time",
}


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp without timezone: {value}")
    return parsed.astimezone(UTC)


def generate_nonce() -> str:
    """Return a fresh 16-byte hex nonce for a sign-in assertion."""
    return secrets.token_hex(16)


@dataclass(frozen=True)
class SiweMessage:
    """Structured form of a sign-in assertion."""

    domain: str
    address: str
    statement: str | None
    uri: str
    version: str
    chain_id: int
    nonce: str
    issued_at: datetime
    expiration_time: datetime | None = None

    def prepare(self) -> str:
        """Render the canonical text the wallet signs."""
        lines = [f"{self.domain}{_HEADER_SUFFIX}", self.address, ""]
        if self.statement:
            lines.extend([self.statement, ""])
        lines.extend(
            [
                f"URI: {self.uri}",
                f"Version: {self.version}",
                f"Chain ID: {self.chain_id}",
                f"Nonce: {self.nonce}",
                f"Issued At: {_format_timestamp(self.issued_at)}",
            ]
        )
        if self.expiration_time is not None:
            lines.append(f"Expiration Time: {_format_timestamp(self.expiration_time)}")
        return "\n".join(lines)

    @classmethod
    def parse(cls, text: str) -> SiweMessage:
        """Parse canonical assertion text.

        Raises:
            ValueError: If any required element is missing or malformed.
        """
        lines = text.split("\n")
        if len(lines) < 2:
            raise ValueError("Assertion is too short")

        header = _HEADER_RE.match(lines[0])
        if header is None:
            raise ValueError("Missing sign-in header")
        address = lines[1].strip()
        if not _ADDRESS_RE.match(address):
            raise ValueError("Missing or malformed address line")

        statement: str | None = None
        if len(lines) > 3 and lines[2] == "" and lines[3] and not lines[3].startswith("URI: "):
            statement = lines[3]

        fields: dict[str, str] = {}
        for line in lines[2:]:
            for prefix, name in _FIELD_PREFIXES.items():
                if line.startswith(prefix):
                    fields[name] = line[len(prefix):].strip()

        missing = [
            name
            for name in ("uri", "version", "chain_id", "nonce", "issued_at")
            if not fields.get(name)
        ]
        if missing:
            raise ValueError(f"Assertion is missing fields: {', '.join(missing)}")

        expiration = fields.get("expiration_time")
        return cls(
            domain=header.group("domain"),
            address=address,
            statement=statement,
            uri=fields["uri"],
            version=fields["version"],
            chain_id=int(fields["chain_id"]),
            nonce=fields["nonce"],
            issued_at=_parse_timestamp(fields["issued_at"]),
            expiration_time=_parse_timestamp(expiration) if expiration else None,
        )


def build_siwe_message(
    *,
    domain: str,
    address: str,
    uri: str,
    chain_id: int,
    statement: str | None = None,
    nonce: str | None = None,
    issued_at: datetime | None = None,
    expiration_minutes: int | None = None,
) -> SiweMessage:
    """Assemble a fresh assertion for the wallet to sign."""
    issued = issued_at or utcnow()
    minutes = (
        expiration_minutes if expiration_minutes is not None else settings.siwe_session_minutes
    )
    return SiweMessage(
        domain=domain,
        address=address,
        statement=statement if statement is not None else settings.siwe_statement,
        uri=uri,
        version="1",
        chain_id=chain_id,
        nonce=nonce or generate_nonce(),
        issued_at=issued,
        expiration_time=issued + timedelta(minutes=minutes),
    )


def recover_signer(message: str, signature: str) -> str:
    """Recover the address that produced an EIP-191 ``personal_sign`` signature."""
    signable = encode_defunct(text=message)
    return Account.recover_message(
        signable,
        signature=bytes.fromhex(signature.removeprefix("0x")),
    )


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of checking a signed assertion."""

    valid: bool
    reason: str | None = None
    assertion: SiweMessage | None = None


class SessionVerifier:
    """Stateless check of (assertion, signature, claimed address)."""

    def __init__(self, clock_skew_seconds: int | None = None) -> None:
        skew = (
            clock_skew_seconds
            if clock_skew_seconds is not None
            else settings.siwe_clock_skew_seconds
        )
        self.clock_skew = timedelta(seconds=skew)

    def verify(
        self,
        message: str,
        signature: str,
        claimed_address: str,
        now: datetime | None = None,
    ) -> VerificationResult:
        """Validate the signature and the assertion's temporal fields.

        Any parse error, signer mismatch or expiry violation yields an invalid
        result; nothing is partially trusted.
        """
        if not message or not signature or not claimed_address:
            return VerificationResult(False, "missing credentials")

        claimed = claimed_address.strip().lower()
        try:
            recovered = recover_signer(message, signature)
        except Exception as exc:  # malformed signature bytes or recovery failure
            logger.info("Signature recovery failed: %s", type(exc).__name__)
            return VerificationResult(False, "malformed signature")
        if recovered.lower() != claimed:
            return VerificationResult(False, "signature does not match address")

        try:
            assertion = SiweMessage.parse(message)
        except ValueError as exc:
            return VerificationResult(False, f"unparseable assertion: {exc}")
        if assertion.address.lower() != claimed:
            return VerificationResult(False, "assertion names a different address")

        current = now or utcnow()
        if assertion.issued_at > current + self.clock_skew:
            return VerificationResult(False, "assertion issued in the future")
        if assertion.expiration_time is not None and assertion.expiration_time < current:
            return VerificationResult(False, "assertion expired")

        return VerificationResult(True, assertion=assertion)

    def require(
        self,
        message: str,
        signature: str,
        claimed_address: str,
        now: datetime | None = None,
    ) -> SiweMessage:
        """Return the parsed assertion or raise :class:`Unauthenticated`."""
        result = self.verify(message, signature, claimed_address, now)
        if not result.valid or result.assertion is None:
            logger.info("Rejected assertion for %s: %s", claimed_address.lower(), result.reason)
            raise Unauthenticated()
        return result.assertion


@dataclass(frozen=True)
class SignedAssertion:
    """The credentials a privileged request carries: assertion, signature, wallet."""

    message: str
    signature: str
    address: str

    def verify_with(self, verifier: SessionVerifier, now: datetime | None = None) -> SiweMessage:
        return verifier.require(self.message, self.signature, self.address, now)
