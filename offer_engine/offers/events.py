"""Domain events emitted by the negotiation engine.

Delivery (email, push, in-app) belongs to a collaborator; the engine hands
events to an :class:`EventPublisher` once the change they describe has
committed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
import enum
import uuid

from offer_engine.core.logging import log
from offer_engine.db.models.offer import Offer


class OfferEventType(str, enum.Enum):
    OFFER_RECEIVED = "offer_received"
    COUNTER_OFFER_RECEIVED = "counter_offer_received"
    OFFER_COUNTERED = "offer_countered"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    OFFER_WITHDRAWN = "offer_withdrawn"
    OFFER_EXPIRED = "offer_expired"


@dataclass(frozen=True)
class OfferEvent:
    type: OfferEventType
    offer_id: uuid.UUID
    listing_id: uuid.UUID
    recipient_id: uuid.UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


def build_event(
    event_type: OfferEventType,
    offer: Offer,
    recipient_id: uuid.UUID,
    occurred_at: datetime,
    **payload: Any,
) -> OfferEvent:
    return OfferEvent(
        type=event_type,
        offer_id=offer.id,
        listing_id=offer.listing_id,
        recipient_id=recipient_id,
        occurred_at=occurred_at,
        payload={"offer_amount": str(offer.offer_amount), **payload},
    )


class EventPublisher(ABC):
    """Hands domain events to whatever delivers them."""

    @abstractmethod
    async def publish(self, event: OfferEvent) -> None:
        pass


class LoggingEventPublisher(EventPublisher):
    """Default publisher: records events in the application log."""

    async def publish(self, event: OfferEvent) -> None:
        log.info(
            f"Offer event {event.type.value}: offer={event.offer_id} "
            f"recipient={event.recipient_id}"
        )


class CollectingEventPublisher(EventPublisher):
    """Keeps published events in memory."""

    def __init__(self) -> None:
        self.events: list[OfferEvent] = []

    async def publish(self, event: OfferEvent) -> None:
        self.events.append(event)


async def publish_all(
    publisher: EventPublisher,
    events: list[OfferEvent],
) -> list[tuple[OfferEvent, Exception]]:
    """Publish each event; failures are logged and returned, never raised."""
    failures = []
    for event in events:
        try:
            await publisher.publish(event)
        except Exception as e:
            log.error(
                f"Failed to publish {event.type.value} for offer {event.offer_id} "
                f"to {event.recipient_id}: {e}"
            )
            failures.append((event, e))
    return failures
