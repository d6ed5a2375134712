"""FastAPI dependencies"""

import asyncio
from typing import Annotated, Awaitable, TypeVar
import uuid

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_engine.config import settings
from offer_engine.core.exceptions import AuthenticationError, DeadlineExceededError
from offer_engine.core.security import decode_access_token, verify_cron_secret
from offer_engine.db.session import async_session_factory, get_db
from offer_engine.offers.events import EventPublisher, LoggingEventPublisher
from offer_engine.offers.service import NegotiationService

T = TypeVar("T")

_publisher = LoggingEventPublisher()


async def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> uuid.UUID:
    """Get current user ID from JWT token."""
    if not authorization:
        raise AuthenticationError("Authorization header required")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format")

    payload = decode_access_token(parts[1])
    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")

    try:
        return uuid.UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Invalid token subject")


async def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    verify_cron_secret(authorization)


def get_event_publisher() -> EventPublisher:
    return _publisher


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_negotiation_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> NegotiationService:
    return NegotiationService(db, publisher=publisher)


async def with_deadline(operation: Awaitable[T], timeout: float | None = None) -> T:
    """Await ``operation``, cancelling it once the request deadline passes."""
    timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError:
        raise DeadlineExceededError(timeout)


# Type aliases for dependencies
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
Negotiations = Annotated[NegotiationService, Depends(get_negotiation_service)]
CronCaller = Depends(require_cron_secret)
