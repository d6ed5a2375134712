"""Negotiation service: create, counter and respond to offers.

Each operation runs in one transaction on the caller's session and commits
its primary change (new offer, status transition) as a unit. History rows
are written in a savepoint inside that transaction; a failed history write
is reported but does not undo the change. Marking the listing sold and
publishing events run after the commit and are likewise reported on the
returned :class:`OfferOutcome` instead of failing the call.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable
import enum
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offer_engine.config import settings
from offer_engine.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from offer_engine.core.logging import log
from offer_engine.core.timeutils import utcnow
from offer_engine.db.models.offer import HistoryAction, Offer, OfferHistory, OfferStatus
from offer_engine.offers.audit import AuditTrail, HistoryEntry
from offer_engine.offers.events import (
    EventPublisher,
    LoggingEventPublisher,
    OfferEvent,
    OfferEventType,
    build_event,
    publish_all,
)
from offer_engine.offers.guard import can_transition, can_view
from offer_engine.offers.listings import ListingCatalog, SqlListingCatalog
from offer_engine.offers.store import OfferStore
from offer_engine.offers.sweeper import expire_offer, expiry_events, is_overdue
from offer_engine.offers.transitions import (
    RESPONSE_ACTIONS,
    OfferAction,
    transition_for,
)
from offer_engine.offers.types import OfferDirection, OfferOutcome, OfferRole, OfferTerms, Page

# Offer amounts are stored as NUMERIC(12, 2)
MAX_OFFER_AMOUNT = Decimal("10000000000")
_CENT = Decimal("0.01")

_RESPONSE_EVENTS = {
    OfferAction.ACCEPT: OfferEventType.OFFER_ACCEPTED,
    OfferAction.REJECT: OfferEventType.OFFER_REJECTED,
    OfferAction.WITHDRAW: OfferEventType.OFFER_WITHDRAWN,
}


class NegotiationService:
    """Offer lifecycle operations on behalf of an authenticated actor."""

    def __init__(
        self,
        db: AsyncSession,
        listings: ListingCatalog | None = None,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
        offer_ttl: timedelta | None = None,
    ):
        self.db = db
        self.store = OfferStore(db)
        self.audit = AuditTrail(db)
        self.listings = listings or SqlListingCatalog(db)
        self.publisher = publisher or LoggingEventPublisher()
        self.clock = clock
        self.offer_ttl = offer_ttl or timedelta(hours=settings.OFFER_TTL_HOURS)

    @asynccontextmanager
    async def _transaction(self):
        # BaseException so a cancelled call leaves nothing behind either
        try:
            yield
            await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise

    # ─── Commands ────────────────────────────────────────

    async def create_offer(
        self,
        buyer_id: uuid.UUID,
        listing_id: uuid.UUID,
        amount: Decimal | int | float | str,
        terms: OfferTerms | None = None,
        message: str | None = None,
    ) -> OfferOutcome:
        """Open a new negotiation on a listing as its buyer."""
        amount = _validate_amount(amount)
        terms = terms or OfferTerms()

        async with self._transaction():
            listing = await self.listings.get(listing_id)
            if listing is None:
                raise NotFoundError("Listing", str(listing_id))
            if not listing.is_sellable:
                raise InvalidStateError(
                    f"Listing is not accepting offers (status: {listing.status})",
                    current_status=listing.status,
                )
            if listing.owner_id == buyer_id:
                raise InvalidStateError("Cannot make an offer on your own listing")

            existing = await self.store.find_open_negotiation(listing_id, buyer_id, listing.owner_id)
            if existing is not None:
                raise ConflictError(
                    "You already have a pending offer on this listing",
                    current_status=existing.status,
                )

            now = self.clock()
            offer = await self.store.insert(
                Offer(
                    listing_id=listing_id,
                    buyer_id=buyer_id,
                    seller_id=listing.owner_id,
                    proposed_by=buyer_id,
                    offer_amount=amount,
                    message=message,
                    cash_offer=terms.cash_offer,
                    financing_needed=terms.financing_needed,
                    inspection_contingency=terms.inspection_contingency,
                    status=OfferStatus.PENDING.value,
                    counter_offer_count=0,
                    is_counter_offer=False,
                    expires_at=now + self.offer_ttl,
                    created_at=now,
                    updated_at=now,
                )
            )
            outcome = OfferOutcome(offer=offer)
            await self._record(
                outcome,
                offer.id,
                HistoryAction.CREATED,
                buyer_id,
                {"offer_amount": str(amount), "terms": terms.to_dict()},
                now,
            )

        log.info(f"Offer {offer.id} created on listing {listing_id} by {buyer_id}")
        await self._publish(
            outcome,
            [build_event(OfferEventType.OFFER_RECEIVED, offer, offer.seller_id, now)],
        )
        return outcome

    async def create_counter_offer(
        self,
        actor_id: uuid.UUID,
        original_offer_id: uuid.UUID,
        amount: Decimal | int | float | str,
        terms: OfferTerms | None = None,
        message: str | None = None,
    ) -> OfferOutcome:
        """Retire a pending offer and open its successor with the roles swapped.

        Whoever counters takes the opposite role from the one they held: a
        buyer countering becomes the seller of the new offer, a seller
        countering becomes its buyer.
        """
        amount = _validate_amount(amount)
        terms = terms or OfferTerms()

        async with self._transaction():
            original = await self._load(original_offer_id)

            if await self._expire_if_overdue(original, actor_id):
                raise InvalidStateError(
                    "This offer has expired and cannot be countered",
                    current_status=OfferStatus.EXPIRED.value,
                )
            if original.status != OfferStatus.PENDING.value:
                raise InvalidStateError(
                    f"Can only counter pending offers (status: {original.status})",
                    current_status=original.status,
                )

            decision = can_transition(actor_id, original, OfferAction.COUNTER)
            if not decision:
                raise AuthorizationError(decision.reason)

            original_buyer, original_seller = original.buyer_id, original.seller_id
            now = self.clock()
            await self._apply(original, OfferAction.COUNTER, now)

            if actor_id == original_buyer:
                buyer_id, seller_id = original_seller, actor_id
            else:
                buyer_id, seller_id = actor_id, original_buyer

            counter = await self.store.insert(
                Offer(
                    listing_id=original.listing_id,
                    buyer_id=buyer_id,
                    seller_id=seller_id,
                    proposed_by=actor_id,
                    offer_amount=amount,
                    message=message,
                    cash_offer=terms.cash_offer,
                    financing_needed=terms.financing_needed,
                    inspection_contingency=terms.inspection_contingency,
                    status=OfferStatus.PENDING.value,
                    original_offer_id=original.id,
                    counter_offer_count=original.counter_offer_count + 1,
                    is_counter_offer=True,
                    expires_at=now + self.offer_ttl,
                    created_at=now,
                    updated_at=now,
                )
            )
            retired = await self.store.get(original.id)

            outcome = OfferOutcome(offer=counter, retired_offer=retired)
            await self._record(
                outcome,
                original.id,
                HistoryAction.COUNTERED,
                actor_id,
                {
                    "old_status": OfferStatus.PENDING.value,
                    "new_status": OfferStatus.COUNTERED.value,
                    "counter_offer_id": str(counter.id),
                    "counter_offer_amount": str(amount),
                    "counter_type": "original_offer_countered",
                },
                now,
            )
            await self._record(
                outcome,
                counter.id,
                HistoryAction.COUNTERED,
                actor_id,
                {
                    "offer_amount": str(amount),
                    "terms": terms.to_dict(),
                    "original_offer_id": str(original.id),
                    "counter_offer_count": counter.counter_offer_count,
                    "counter_type": "new_counter_offer",
                },
                now,
            )

        log.info(
            f"Offer {original.id} countered by {actor_id} with offer {counter.id} "
            f"(round {counter.counter_offer_count})"
        )
        other_party = original_seller if actor_id == original_buyer else original_buyer
        await self._publish(
            outcome,
            [
                build_event(
                    OfferEventType.COUNTER_OFFER_RECEIVED,
                    counter,
                    other_party,
                    now,
                    original_offer_id=str(retired.id),
                ),
                build_event(
                    OfferEventType.OFFER_COUNTERED,
                    retired,
                    other_party,
                    now,
                    counter_offer_id=str(counter.id),
                ),
            ],
        )
        return outcome

    async def respond_to_offer(
        self,
        actor_id: uuid.UUID,
        offer_id: uuid.UUID,
        action: OfferAction | str,
        rejection_reason: str | None = None,
    ) -> OfferOutcome:
        """Accept, reject or withdraw a pending offer."""
        action = _parse_response_action(action)

        async with self._transaction():
            offer = await self._load(offer_id)

            if await self._expire_if_overdue(offer, actor_id):
                raise InvalidStateError(
                    "This offer has expired and cannot be modified",
                    current_status=OfferStatus.EXPIRED.value,
                )
            if offer.status != OfferStatus.PENDING.value:
                raise InvalidStateError(
                    f"Cannot update offer with status: {offer.status}",
                    current_status=offer.status,
                )

            decision = can_transition(actor_id, offer, action)
            if not decision:
                raise AuthorizationError(decision.reason)

            now = self.clock()
            transition = await self._apply(offer, action, now)
            offer = await self.store.get(offer.id)

            outcome = OfferOutcome(offer=offer)
            details: dict[str, Any] = {
                "old_status": OfferStatus.PENDING.value,
                "new_status": transition.target.value,
            }
            if rejection_reason:
                details["rejection_reason"] = rejection_reason
            await self._record(outcome, offer.id, transition.history_action, actor_id, details, now)

        log.info(f"Offer {offer.id} {transition.target.value} by {actor_id}")

        if action is OfferAction.ACCEPT:
            await self._mark_listing_sold(outcome, now)
            offer = outcome.offer

        recipient = offer.seller_id if action is OfferAction.WITHDRAW else offer.buyer_id
        payload = {"rejection_reason": rejection_reason} if rejection_reason else {}
        await self._publish(
            outcome,
            [build_event(_RESPONSE_EVENTS[action], offer, recipient, now, **payload)],
        )
        return outcome

    # ─── Queries ─────────────────────────────────────────

    async def get_offer(self, actor_id: uuid.UUID, offer_id: uuid.UUID) -> Offer:
        offer = await self._load(offer_id)
        decision = can_view(actor_id, offer)
        if not decision:
            raise AuthorizationError(decision.reason)
        return offer

    async def list_offers(
        self,
        actor_id: uuid.UUID,
        role: OfferRole | str | None = None,
        status: OfferStatus | str | None = None,
        listing_id: uuid.UUID | None = None,
        direction: OfferDirection | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> Page[Offer]:
        """Offers the actor is party to, newest first.

        ``direction`` splits them by who proposed each offer: ``sent`` are
        the actor's own offers and counters, ``received`` await their answer
        or came from the other party.
        """
        role = _parse_enum(OfferRole, role, "role")
        direction = _parse_enum(OfferDirection, direction, "direction")
        status = _parse_enum(OfferStatus, status, "status")
        limit, offset = _page_bounds(limit, offset)

        items, total = await self.store.list_for_user(
            actor_id,
            role=role,
            status=status,
            listing_id=listing_id,
            direction=direction,
            limit=limit,
            offset=offset,
        )
        return Page(items=items, total=total, limit=limit, offset=offset)

    async def list_expiring_offers(self, actor_id: uuid.UUID, hours_ahead: int = 24) -> list[Offer]:
        """Pending offers involving the actor that expire within ``hours_ahead`` hours."""
        max_hours = settings.MAX_EXPIRING_WINDOW_HOURS
        if not 1 <= hours_ahead <= max_hours:
            raise ValidationError(
                f"hours must be between 1 and {max_hours}",
                details={"hours": hours_ahead},
            )
        cutoff = self.clock() + timedelta(hours=hours_ahead)
        return await self.store.list_expiring(actor_id, cutoff)

    async def get_offer_history(
        self,
        actor_id: uuid.UUID,
        offer_id: uuid.UUID,
        action_type: HistoryAction | str | None = None,
        thread: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> Page[OfferHistory]:
        """History of one offer, or of its whole counter-offer thread, oldest first."""
        action_type = _parse_enum(HistoryAction, action_type, "action_type")
        limit, offset = _page_bounds(limit, offset)

        offer = await self.get_offer(actor_id, offer_id)
        offer_ids = await self.store.thread_ids(offer.id) if thread else [offer.id]
        return await self.audit.for_offers(offer_ids, action=action_type, limit=limit, offset=offset)

    async def get_user_history(
        self,
        actor_id: uuid.UUID,
        role: OfferRole | str | None = None,
        action_type: HistoryAction | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> Page[HistoryEntry]:
        """Activity feed across every offer the actor is party to, newest first."""
        role = _parse_enum(OfferRole, role, "role")
        action_type = _parse_enum(HistoryAction, action_type, "action_type")
        limit, offset = _page_bounds(limit, offset)
        return await self.audit.for_user(
            actor_id, role=role, action=action_type, limit=limit, offset=offset
        )

    # ─── Internals ───────────────────────────────────────

    async def _load(self, offer_id: uuid.UUID) -> Offer:
        offer = await self.store.get(offer_id)
        if offer is None:
            raise NotFoundError("Offer", str(offer_id))
        return offer

    async def _apply(self, offer: Offer, action: OfferAction, now: datetime):
        """Move a pending offer through ``action``; a lost race raises ConflictError."""
        transition = transition_for(action)
        changed = await self.store.transition(offer.id, OfferStatus.PENDING, transition, now)
        if not changed:
            current = await self.store.get(offer.id)
            current_status = current.status if current else None
            log.info(f"Offer {offer.id} {action.value} lost race (now {current_status})")
            raise ConflictError(
                f"Offer was modified concurrently (status: {current_status})",
                current_status=current_status,
            )
        return transition

    async def _expire_if_overdue(self, offer: Offer, actor_id: uuid.UUID) -> bool:
        """Expire ``offer`` if its deadline has passed. True when it is now expired.

        The expiry commits on its own so it sticks even though the caller
        goes on to fail the request.
        """
        now = self.clock()
        if not is_overdue(offer, now):
            return False

        expired = await expire_offer(
            self.store, self.audit, offer.id, now, trigger="lazy", observed_by=actor_id
        )
        if expired is None:
            # The sweeper or a user action got there first
            await self.store.get(offer.id)
            return offer.status == OfferStatus.EXPIRED.value

        await self.db.commit()
        log.info(f"Offer {offer.id} expired on access by {actor_id}")
        await publish_all(self.publisher, expiry_events(expired, now))
        return True

    async def _record(
        self,
        outcome: OfferOutcome,
        offer_id: uuid.UUID,
        action: HistoryAction,
        actor_id: uuid.UUID | None,
        details: dict[str, Any],
        at: datetime,
    ) -> None:
        name = f"history:{action.value}:{offer_id}"
        try:
            await self.audit.append(offer_id, action, actor_id, details, at)
        except SQLAlchemyError as e:
            log.error(f"Failed to record {action.value} history for offer {offer_id}: {e}")
            outcome.record(name, e)
            return
        outcome.record(name)

    async def _mark_listing_sold(self, outcome: OfferOutcome, now: datetime) -> None:
        offer_id = outcome.offer.id
        listing_id = outcome.offer.listing_id
        amount = outcome.offer.offer_amount
        try:
            applied = await self.listings.mark_sold(listing_id, amount, now)
        except Exception as e:
            await self.db.rollback()
            # Rollback expired every loaded instance; the acceptance itself is committed
            outcome.offer = await self.store.get(offer_id)
            log.error(
                f"Offer {offer_id} accepted but listing {listing_id} "
                f"could not be marked sold: {e}"
            )
            outcome.record("listing:mark_sold", e)
            return

        if not applied:
            log.warning(f"Listing {listing_id} was already sold when offer {offer_id} was accepted")
        outcome.record("listing:mark_sold")

    async def _publish(self, outcome: OfferOutcome, events: list[OfferEvent]) -> None:
        failures = await publish_all(self.publisher, events)
        failed = {id(event) for event, _ in failures}
        for event, error in failures:
            outcome.record(f"event:{event.type.value}", error)
        outcome.events.extend(e for e in events if id(e) not in failed)


def _validate_amount(amount: Decimal | int | float | str) -> Decimal:
    details = {"offer_amount": str(amount)}
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("offer_amount must be a number", details=details)
    if not value.is_finite() or value <= 0:
        raise ValidationError("offer_amount must be positive", details=details)
    if value >= MAX_OFFER_AMOUNT:
        raise ValidationError(
            f"offer_amount must be less than {MAX_OFFER_AMOUNT:,.0f}", details=details
        )
    if value != value.quantize(_CENT):
        raise ValidationError("offer_amount must have at most two decimal places", details=details)
    return value


def _parse_response_action(action: OfferAction | str) -> OfferAction:
    try:
        parsed = OfferAction(action)
    except ValueError:
        parsed = None
    if parsed not in RESPONSE_ACTIONS:
        raise ValidationError(
            f"Invalid response action: {action}",
            details={"allowed": sorted(a.value for a in RESPONSE_ACTIONS)},
        )
    return parsed


def _parse_enum(enum_cls: type[enum.Enum], value: Any, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value}",
            details={"allowed": [member.value for member in enum_cls]},
        )


def _page_bounds(limit: int | None, offset: int) -> tuple[int, int]:
    max_size = settings.MAX_PAGE_SIZE
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE
    if not 1 <= limit <= max_size:
        raise ValidationError(f"limit must be between 1 and {max_size}", details={"limit": limit})
    if offset < 0:
        raise ValidationError("offset must not be negative", details={"offset": offset})
    return limit, offset
