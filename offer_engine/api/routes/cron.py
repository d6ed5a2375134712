"""Scheduler-triggered maintenance routes"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_engine.api.dependencies import CronCaller, get_event_publisher, get_session_factory
from offer_engine.config import settings
from offer_engine.core.logging import log
from offer_engine.offers.events import EventPublisher
from offer_engine.offers.sweeper import ExpirationSweeper

router = APIRouter()


@router.post("/expire-offers", dependencies=[CronCaller])
async def expire_offers(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
):
    """Run one expiration sweep on demand."""
    sweeper = ExpirationSweeper(
        session_factory,
        publisher=publisher,
        batch_size=settings.SWEEP_BATCH_SIZE,
    )
    expired = await sweeper.sweep()
    log.info(f"Cron expiration sweep finished: {expired} offers expired")
    return {"success": True, "expired_count": expired}


@router.get("/expire-offers", dependencies=[CronCaller])
async def expire_offers_health():
    return {"status": "ok", "job": "expire-offers"}
