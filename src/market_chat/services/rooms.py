"""Room and market identity shared by chat and moderation."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RoomKey:
    """Identity of a market's chat room and of its moderation record.

    The market id alone is not unique: the same id can recur on another
    contract or network, so the triple is the key.
    """

    market_id: str
    contract_address: str
    network: str

    @classmethod
    def of(cls, market_id: str, contract_address: str, network: str) -> RoomKey:
        """Build a key with the contract address lowercase-normalized."""
        return cls(
            market_id=str(market_id).strip(),
            contract_address=contract_address.strip().lower(),
            network=network.strip(),
        )

    @property
    def channel(self) -> str:
        """Name of the realtime channel carrying this room's events."""
        return f"chat:{self.network}:{self.contract_address}:{self.market_id}"


# Moderation records are keyed by the same triple as chat rooms.
MarketKey = RoomKey
