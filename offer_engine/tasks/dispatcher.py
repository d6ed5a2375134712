"""Background task dispatcher.

Simple asyncio.create_task() based background work tied to the
application lifespan. Currently runs the offer expiration sweeper.
"""

import asyncio

from offer_engine.config import settings
from offer_engine.core.logging import log
from offer_engine.db.session import async_session_factory
from offer_engine.offers.sweeper import ExpirationSweeper, run_sweeper_loop

_sweeper_task: asyncio.Task | None = None


def start_expiration_sweeper() -> asyncio.Task | None:
    """Start the sweeper loop unless it is disabled or already running."""
    global _sweeper_task

    if not settings.SWEEPER_ENABLED:
        log.info("Offer expiration sweeper disabled")
        return None
    if _sweeper_task is not None and not _sweeper_task.done():
        return _sweeper_task

    sweeper = ExpirationSweeper(
        async_session_factory,
        batch_size=settings.SWEEP_BATCH_SIZE,
    )
    _sweeper_task = asyncio.create_task(
        run_sweeper_loop(sweeper, interval_seconds=settings.SWEEP_INTERVAL_SECONDS),
        name="offer-expiration-sweeper",
    )
    return _sweeper_task


async def stop_expiration_sweeper() -> None:
    global _sweeper_task

    task, _sweeper_task = _sweeper_task, None
    if task is None or task.done():
        return

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    log.info("Offer expiration sweeper stopped")
