"""Listing catalog collaborator.

The engine only needs two things from the catalog: read a listing to check
it can take offers, and flip it to sold when an offer is accepted.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from offer_engine.db.models.listing import Listing, ListingStatus


@dataclass(frozen=True)
class ListingInfo:
    id: uuid.UUID
    owner_id: uuid.UUID
    status: str
    price: Decimal | None

    @property
    def is_sellable(self) -> bool:
        return self.status == ListingStatus.ACTIVE.value


class ListingCatalog(ABC):
    """Read/mark-sold access to listings."""

    @abstractmethod
    async def get(self, listing_id: uuid.UUID) -> ListingInfo | None:
        pass

    @abstractmethod
    async def mark_sold(self, listing_id: uuid.UUID, price: Decimal, sold_at: datetime) -> bool:
        """Mark a listing sold. Returns False when it was already sold."""
        pass


class SqlListingCatalog(ListingCatalog):
    """Catalog backed by the ``listings`` table in the engine's database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, listing_id: uuid.UUID) -> ListingInfo | None:
        result = await self.db.execute(select(Listing).where(Listing.id == listing_id))
        listing = result.scalar_one_or_none()
        if listing is None:
            return None
        return ListingInfo(
            id=listing.id,
            owner_id=listing.owner_id,
            status=listing.status,
            price=listing.price,
        )

    async def mark_sold(self, listing_id: uuid.UUID, price: Decimal, sold_at: datetime) -> bool:
        result = await self.db.execute(
            update(Listing)
            .where(Listing.id == listing_id, Listing.status != ListingStatus.SOLD.value)
            .values(
                status=ListingStatus.SOLD.value,
                sold_at=sold_at,
                sold_price=price,
                updated_at=sold_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0
