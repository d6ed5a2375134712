"""Expiration sweeper.

Finds pending offers past their deadline and moves them to ``expired``
with the same conditional update that user actions use, so a sweep racing
an accept/reject/withdraw/counter has exactly one winner. Offers that lost
the race are skipped, not reported.
"""

import asyncio
from datetime import datetime
from typing import Callable
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_engine.core.logging import log
from offer_engine.core.timeutils import as_utc, utcnow
from offer_engine.db.models.offer import HistoryAction, Offer, OfferStatus
from offer_engine.offers.audit import AuditTrail
from offer_engine.offers.events import (
    EventPublisher,
    LoggingEventPublisher,
    OfferEvent,
    OfferEventType,
    build_event,
    publish_all,
)
from offer_engine.offers.store import OfferStore
from offer_engine.offers.transitions import OfferAction, transition_for

EXPIRE = transition_for(OfferAction.EXPIRE)


def is_overdue(offer: Offer, now: datetime) -> bool:
    return offer.status == OfferStatus.PENDING.value and as_utc(offer.expires_at) <= now


async def expire_offer(
    store: OfferStore,
    audit: AuditTrail,
    offer_id: uuid.UUID,
    now: datetime,
    trigger: str,
    observed_by: uuid.UUID | None = None,
) -> Offer | None:
    """Expire one pending offer. Returns it if this call won, None if it had already moved on."""
    changed = await store.transition(offer_id, OfferStatus.PENDING, EXPIRE, now)
    if not changed:
        return None

    details = {
        "old_status": OfferStatus.PENDING.value,
        "new_status": OfferStatus.EXPIRED.value,
        "trigger": trigger,
    }
    if observed_by is not None:
        details["observed_by"] = str(observed_by)
    try:
        await audit.append(offer_id, HistoryAction.EXPIRED, None, details, now)
    except SQLAlchemyError as e:
        log.error(f"Failed to record expiry history for offer {offer_id}: {e}")

    return await store.get(offer_id)


def expiry_events(offer: Offer, now: datetime) -> list[OfferEvent]:
    return [
        build_event(OfferEventType.OFFER_EXPIRED, offer, offer.buyer_id, now),
        build_event(OfferEventType.OFFER_EXPIRED, offer, offer.seller_id, now),
    ]


class ExpirationSweeper:
    """Expires overdue pending offers in bounded batches."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher | None = None,
        batch_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.session_factory = session_factory
        self.publisher = publisher or LoggingEventPublisher()
        self.batch_size = batch_size
        self.clock = clock

    async def sweep(self) -> int:
        """Run one full sweep. Returns how many offers this sweep expired."""
        now = self.clock()
        total = 0

        while True:
            async with self.session_factory() as db:
                store = OfferStore(db)
                audit = AuditTrail(db)
                due = await store.due_for_expiry(now, self.batch_size)

                expired: list[Offer] = []
                for offer_id in due:
                    offer = await expire_offer(store, audit, offer_id, now, trigger="sweep")
                    if offer is None:
                        log.debug(f"Offer {offer_id} left pending before the sweep reached it")
                        continue
                    expired.append(offer)
                await db.commit()

            total += len(expired)
            events = [event for offer in expired for event in expiry_events(offer, now)]
            await publish_all(self.publisher, events)

            if len(due) < self.batch_size:
                break

        if total:
            log.info(f"Expiration sweep expired {total} offers")
        return total


async def run_sweeper_loop(sweeper: ExpirationSweeper, interval_seconds: float = 60) -> None:
    """Sweep forever on a fixed interval; a failed cycle is logged and retried next tick."""
    log.info(f"Offer expiration sweeper started (interval={interval_seconds}s)")

    while True:
        try:
            await sweeper.sweep()
        except Exception:
            log.exception("Offer expiration sweep failed")

        await asyncio.sleep(interval_seconds)
