from datetime import datetime, timedelta, timezone
import uuid

import pytest

from offer_engine.core.exceptions import AuthenticationError
from offer_engine.core.security import create_access_token, decode_access_token, verify_cron_secret
from offer_engine.core.timeutils import as_utc, require_utc_timestamp
from offer_engine.db.models.offer import Offer
from offer_engine.offers.events import (
    CollectingEventPublisher,
    EventPublisher,
    OfferEventType,
    build_event,
    publish_all,
)
from offer_engine.offers.types import OfferOutcome, Page


def test_as_utc_treats_naive_values_as_utc():
    naive = datetime(2026, 5, 1, 12, 0)
    assert as_utc(naive) == datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    ist = timezone(timedelta(hours=5, minutes=30))
    assert as_utc(datetime(2026, 5, 1, 17, 30, tzinfo=ist)).hour == 12


def test_require_utc_timestamp():
    require_utc_timestamp("at", datetime.now(timezone.utc))
    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2026, 5, 1))
    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2026, 5, 1, tzinfo=timezone(timedelta(hours=2))))


def test_access_token_round_trip():
    user_id = str(uuid.uuid4())
    payload = decode_access_token(create_access_token({"sub": user_id}))
    assert payload["sub"] == user_id

    expired = create_access_token({"sub": user_id}, expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthenticationError):
        decode_access_token(expired)


def test_cron_secret_check():
    verify_cron_secret("Bearer test-cron-secret-0123")
    for header in (None, "", "test-cron-secret-0123", "Basic test-cron-secret-0123", "Bearer nope"):
        with pytest.raises(AuthenticationError):
            verify_cron_secret(header)


def test_page_has_more():
    assert Page(items=[1, 2], total=5, limit=2, offset=2).has_more
    assert not Page(items=[5], total=5, limit=2, offset=4).has_more


def test_outcome_tracks_side_effects():
    outcome = OfferOutcome(offer=Offer())
    outcome.record("history:created")
    assert outcome.fully_applied

    outcome.record("listing:mark_sold", RuntimeError("boom"))
    assert not outcome.fully_applied
    assert outcome.side_effects[-1].error == "boom"


@pytest.mark.asyncio
async def test_publish_all_keeps_going_after_a_failure():
    class HalfBroken(EventPublisher):
        def __init__(self):
            self.delivered = []

        async def publish(self, event):
            if event.recipient_id == bad:
                raise ConnectionError("no route")
            self.delivered.append(event)

    good, bad = uuid.uuid4(), uuid.uuid4()
    offer = Offer(id=uuid.uuid4(), listing_id=uuid.uuid4(), offer_amount=100)
    now = datetime.now(timezone.utc)
    events = [
        build_event(OfferEventType.OFFER_EXPIRED, offer, bad, now),
        build_event(OfferEventType.OFFER_EXPIRED, offer, good, now),
    ]

    publisher = HalfBroken()
    failures = await publish_all(publisher, events)

    assert [e.recipient_id for e in publisher.delivered] == [good]
    assert len(failures) == 1
    assert failures[0][0].recipient_id == bad


@pytest.mark.asyncio
async def test_collecting_publisher():
    publisher = CollectingEventPublisher()
    offer = Offer(id=uuid.uuid4(), listing_id=uuid.uuid4(), offer_amount=250)
    event = build_event(OfferEventType.OFFER_RECEIVED, offer, uuid.uuid4(), datetime.now(timezone.utc), note="x")

    await publisher.publish(event)

    assert publisher.events == [event]
    assert event.payload == {"offer_amount": "250", "note": "x"}
