"""Seed demo listings and a sample negotiation."""

import asyncio
import sys
import uuid
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from offer_engine.core.security import create_access_token
from offer_engine.db.base import engine, async_session, Base
from offer_engine.db.models.listing import Listing, ListingStatus
from offer_engine.db.models.offer import Offer
from offer_engine.offers.service import NegotiationService
from offer_engine.offers.types import OfferTerms

# Fixed ids so the script can be re-run and tokens stay stable
ALICE = uuid.UUID("5a1b0c3e-0000-4000-8000-00000000a11c")  # seller
BOB = uuid.UUID("5a1b0c3e-0000-4000-8000-000000000b0b")  # buyer
CAROL = uuid.UUID("5a1b0c3e-0000-4000-8000-0000000ca201")  # buyer

DEMO_LISTINGS = [
    {
        "id": uuid.UUID("7e57ab1e-0000-4000-8000-000000000001"),
        "owner_id": ALICE,
        "title": "3-bed townhouse, Elm Street",
        "price": Decimal("425000.00"),
        "status": ListingStatus.ACTIVE.value,
    },
    {
        "id": uuid.UUID("7e57ab1e-0000-4000-8000-000000000002"),
        "owner_id": ALICE,
        "title": "Studio apartment near the station",
        "price": Decimal("189000.00"),
        "status": ListingStatus.ACTIVE.value,
    },
    {
        "id": uuid.UUID("7e57ab1e-0000-4000-8000-000000000003"),
        "owner_id": CAROL,
        "title": "Lakeside cabin (draft)",
        "price": Decimal("260000.00"),
        "status": ListingStatus.DRAFT.value,
    },
]


async def seed():
    """Create tables and seed demo data."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as db:
        for listing_data in DEMO_LISTINGS:
            existing = await db.get(Listing, listing_data["id"])
            if existing:
                print(f"  Listing {listing_data['title']} already exists, skipping")
                continue
            db.add(Listing(**listing_data))
            print(f"  Created listing: {listing_data['title']}")
        await db.commit()

    async with async_session() as db:
        townhouse = DEMO_LISTINGS[0]["id"]
        result = await db.execute(select(Offer.id).where(Offer.listing_id == townhouse).limit(1))
        if result.scalar_one_or_none():
            print("  Sample negotiation already exists, skipping")
        else:
            service = NegotiationService(db)
            opening = await service.create_offer(
                BOB,
                townhouse,
                Decimal("390000"),
                terms=OfferTerms(financing_needed=True),
                message="Pre-approved mortgage, flexible on closing date.",
            )
            counter = await service.create_counter_offer(
                ALICE,
                opening.offer.id,
                Decimal("410000"),
                message="Can meet you at 410k with inspection contingency.",
            )
            print(f"  Offer {opening.offer.id} countered by {counter.offer.id}")

    print("\nDemo tokens:")
    for name, user_id in (("alice", ALICE), ("bob", BOB), ("carol", CAROL)):
        print(f"  {name}: {create_access_token({'sub': str(user_id)})}")

    print("\nSeed complete!")


if __name__ == "__main__":
    asyncio.run(seed())
