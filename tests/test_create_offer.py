from datetime import timedelta
from decimal import Decimal
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from offer_engine.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from offer_engine.core.timeutils import as_utc
from offer_engine.db.models import ListingStatus, Offer, OfferHistory, OfferStatus
from offer_engine.offers.events import OfferEventType
from offer_engine.offers.store import OfferStore
from offer_engine.offers.types import OfferTerms

from tests.conftest import add_listing


@pytest.mark.asyncio
async def test_create_offer_opens_pending_offer(service, buyer_id, seller_id, listing_id, clock, publisher):
    outcome = await service.create_offer(
        buyer_id, listing_id, Decimal("15000"), terms=OfferTerms(cash_offer=True), message="Cash, quick close"
    )
    offer = outcome.offer

    assert offer.status == OfferStatus.PENDING.value
    assert offer.buyer_id == buyer_id
    assert offer.seller_id == seller_id
    assert offer.offer_amount == Decimal("15000")
    assert offer.counter_offer_count == 0
    assert offer.original_offer_id is None
    assert offer.is_counter_offer is False
    assert offer.terms == OfferTerms(cash_offer=True)
    assert as_utc(offer.expires_at) == as_utc(offer.created_at) + timedelta(hours=168)
    assert outcome.fully_applied

    assert [e.type for e in publisher.events] == [OfferEventType.OFFER_RECEIVED]
    assert publisher.events[0].recipient_id == seller_id


@pytest.mark.asyncio
async def test_create_offer_records_created_history(service, db, buyer_id, listing_id):
    outcome = await service.create_offer(buyer_id, listing_id, 15000)

    rows = (await db.execute(select(OfferHistory))).scalars().all()
    assert len(rows) == 1
    assert rows[0].offer_id == outcome.offer.id
    assert rows[0].action_type == "created"
    assert rows[0].action_by == buyer_id
    assert rows[0].action_details == {
        "offer_amount": "15000",
        "terms": {"cash_offer": False, "financing_needed": False, "inspection_contingency": True},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount", [0, -1, "abc", "NaN", "0.004", "12.345", "10000000000", "1e12"]
)
async def test_create_offer_rejects_bad_amount(service, buyer_id, listing_id, amount):
    with pytest.raises(ValidationError):
        await service.create_offer(buyer_id, listing_id, amount)


@pytest.mark.asyncio
async def test_create_offer_keeps_cents_up_to_column_limit(service, buyer_id, listing_id):
    outcome = await service.create_offer(buyer_id, listing_id, "9999999999.99")
    assert outcome.offer.offer_amount == Decimal("9999999999.99")


@pytest.mark.asyncio
async def test_store_only_maps_duplicates_to_conflict(db, buyer_id, seller_id, listing_id, clock):
    now = clock()
    offer = Offer(
        listing_id=listing_id,
        buyer_id=buyer_id,
        seller_id=seller_id,
        proposed_by=buyer_id,
        offer_amount=Decimal("0"),
        status=OfferStatus.PENDING.value,
        expires_at=now + timedelta(days=7),
        created_at=now,
        updated_at=now,
    )

    with pytest.raises(IntegrityError) as exc_info:
        await OfferStore(db).insert(offer)
    assert "CHECK constraint failed" in str(exc_info.value.orig)


@pytest.mark.asyncio
async def test_create_offer_unknown_listing(service, buyer_id):
    with pytest.raises(NotFoundError):
        await service.create_offer(buyer_id, uuid.uuid4(), 100)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ListingStatus.SOLD.value, ListingStatus.DRAFT.value, ListingStatus.INACTIVE.value])
async def test_create_offer_on_unavailable_listing(service, session_factory, buyer_id, seller_id, status):
    listing_id = await add_listing(session_factory, seller_id, status=status)

    with pytest.raises(InvalidStateError) as exc_info:
        await service.create_offer(buyer_id, listing_id, 100)
    assert exc_info.value.current_status == status


@pytest.mark.asyncio
async def test_cannot_offer_on_own_listing(service, seller_id, listing_id):
    with pytest.raises(InvalidStateError):
        await service.create_offer(seller_id, listing_id, 100)


@pytest.mark.asyncio
async def test_second_pending_offer_is_a_conflict(service, db, buyer_id, listing_id):
    await service.create_offer(buyer_id, listing_id, 15000)

    with pytest.raises(ConflictError) as exc_info:
        await service.create_offer(buyer_id, listing_id, 16000)
    assert exc_info.value.current_status == "pending"

    count = len((await db.execute(select(Offer))).scalars().all())
    assert count == 1


@pytest.mark.asyncio
async def test_new_offer_allowed_after_previous_one_closed(service, buyer_id, listing_id):
    first = await service.create_offer(buyer_id, listing_id, 15000)
    await service.respond_to_offer(buyer_id, first.offer.id, "withdraw")

    second = await service.create_offer(buyer_id, listing_id, 15500)
    assert second.offer.status == OfferStatus.PENDING.value


@pytest.mark.asyncio
async def test_other_buyers_can_offer_on_same_listing(service, buyer_id, stranger_id, listing_id):
    await service.create_offer(buyer_id, listing_id, 15000)
    other = await service.create_offer(stranger_id, listing_id, 15200)
    assert other.offer.buyer_id == stranger_id


@pytest.mark.asyncio
async def test_unique_index_backs_the_duplicate_check(session_factory, make_service, buyer_id, listing_id, monkeypatch):
    async with session_factory() as session:
        service = make_service(session)
        await service.create_offer(buyer_id, listing_id, 15000)

    async with session_factory() as session:
        service = make_service(session)

        async def no_open_negotiation(*args, **kwargs):
            return None

        # Simulates a concurrent create that passed the read-side check
        monkeypatch.setattr(service.store, "find_open_negotiation", no_open_negotiation)
        with pytest.raises(ConflictError):
            await service.create_offer(buyer_id, listing_id, 15100)


@pytest.mark.asyncio
async def test_history_failure_does_not_undo_the_offer(service, session_factory, buyer_id, listing_id, monkeypatch):
    async def broken_append(*args, **kwargs):
        raise SQLAlchemyError("offer_history unavailable")

    monkeypatch.setattr(service.audit, "append", broken_append)
    outcome = await service.create_offer(buyer_id, listing_id, 15000)

    assert not outcome.fully_applied
    failed = [e for e in outcome.side_effects if not e.ok]
    assert len(failed) == 1
    assert failed[0].name.startswith("history:created")

    async with session_factory() as session:
        stored = await session.get(Offer, outcome.offer.id)
        assert stored.status == OfferStatus.PENDING.value
