"""Shared API dependencies for services, clock and realtime broker."""

from collections.abc import Callable
from datetime import datetime
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from market_chat.core.settings import settings
from market_chat.db.session import get_db
from market_chat.db.time import utcnow
from market_chat.services.chat import ChatService
from market_chat.services.eligibility import HolderPredicate, get_holder_predicate
from market_chat.services.moderation import ModerationService
from market_chat.services.realtime import RealtimeBroker, get_realtime_broker

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_clock() -> Callable[[], datetime]:
    """Return the wall clock used for assertion and cooldown checks."""
    return utcnow


def get_admin_addresses() -> frozenset[str]:
    """Return the configured moderation allowlist."""
    return settings.admin_addresses


ClockDep = Annotated[Callable[[], datetime], Depends(get_clock)]
AdminsDep = Annotated[frozenset[str], Depends(get_admin_addresses)]
BrokerDep = Annotated[RealtimeBroker, Depends(get_realtime_broker)]
HoldersDep = Annotated[HolderPredicate, Depends(get_holder_predicate)]


def get_chat_service(
    db: SessionDep,
    broker: BrokerDep,
    holders: HoldersDep,
    admins: AdminsDep,
    clock: ClockDep,
) -> ChatService:
    return ChatService(
        db,
        broker=broker,
        holders=holders,
        admin_addresses=admins,
        clock=clock,
    )


def get_moderation_service(
    db: SessionDep,
    admins: AdminsDep,
    clock: ClockDep,
) -> ModerationService:
    return ModerationService(db, admin_addresses=admins, clock=clock)


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
ModerationServiceDep = Annotated[ModerationService, Depends(get_moderation_service)]
