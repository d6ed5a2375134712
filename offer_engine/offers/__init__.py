"""Offer negotiation: store, guard, service, sweeper and audit trail."""

from offer_engine.offers.audit import AuditTrail, HistoryEntry
from offer_engine.offers.events import (
    CollectingEventPublisher,
    EventPublisher,
    LoggingEventPublisher,
    OfferEvent,
    OfferEventType,
)
from offer_engine.offers.guard import Decision, can_transition, can_view
from offer_engine.offers.listings import ListingCatalog, ListingInfo, SqlListingCatalog
from offer_engine.offers.service import NegotiationService
from offer_engine.offers.store import OfferStore
from offer_engine.offers.sweeper import ExpirationSweeper, run_sweeper_loop
from offer_engine.offers.transitions import OfferAction
from offer_engine.offers.types import (
    OfferDirection,
    OfferOutcome,
    OfferRole,
    OfferTerms,
    Page,
    SideEffectResult,
)

__all__ = [
    "AuditTrail",
    "CollectingEventPublisher",
    "Decision",
    "EventPublisher",
    "ExpirationSweeper",
    "HistoryEntry",
    "ListingCatalog",
    "ListingInfo",
    "LoggingEventPublisher",
    "NegotiationService",
    "OfferAction",
    "OfferDirection",
    "OfferEvent",
    "OfferEventType",
    "OfferOutcome",
    "OfferRole",
    "OfferStore",
    "OfferTerms",
    "Page",
    "SideEffectResult",
    "can_transition",
    "can_view",
    "run_sweeper_loop",
]
