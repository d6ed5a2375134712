"""Offer store, the only writer of ``Offer.status``.

Status changes go through :meth:`OfferStore.transition`, a conditional
UPDATE guarded by the expected current status. Zero affected rows means a
concurrent writer won; callers treat that as a lost race.
"""

from datetime import datetime
import uuid

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from offer_engine.core.exceptions import ConflictError
from offer_engine.core.logging import log
from offer_engine.core.timeutils import require_utc_timestamp
from offer_engine.db.models.offer import Offer, OfferStatus
from offer_engine.offers.transitions import Transition, can_move
from offer_engine.offers.types import OfferDirection, OfferRole

PENDING_UNIQUE_INDEX = "uq_offers_pending_listing_parties"
# Postgres unique_violation
_UNIQUE_VIOLATION = "23505"


class OfferStore:
    """Persistence for offers, scoped to one session/transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, offer_id: uuid.UUID) -> Offer | None:
        """Load an offer, overwriting any stale copy in the identity map."""
        result = await self.db.execute(
            select(Offer)
            .where(Offer.id == offer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_open_negotiation(
        self,
        listing_id: uuid.UUID,
        buyer_id: uuid.UUID,
        seller_id: uuid.UUID,
    ) -> Offer | None:
        """Return the pending offer between two parties on a listing, in either direction."""
        result = await self.db.execute(
            select(Offer)
            .where(
                Offer.listing_id == listing_id,
                Offer.status == OfferStatus.PENDING.value,
                or_(
                    and_(Offer.buyer_id == buyer_id, Offer.seller_id == seller_id),
                    and_(Offer.buyer_id == seller_id, Offer.seller_id == buyer_id),
                ),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def insert(self, offer: Offer) -> Offer:
        """Persist a new pending offer.

        The partial unique index on pending offers turns a duplicate that
        slipped past the read-side check into a ConflictError. Any other
        integrity failure propagates unchanged.
        """
        if offer.status != OfferStatus.PENDING.value:
            raise ValueError("New offers must start pending")

        self.db.add(offer)
        try:
            await self.db.flush()
        except IntegrityError as e:
            if not _is_pending_duplicate(e):
                raise
            log.warning(
                f"Pending offer insert rejected for listing={offer.listing_id} "
                f"buyer={offer.buyer_id}: {e.orig}"
            )
            raise ConflictError(
                "A pending offer already exists for this buyer on this listing",
                current_status=OfferStatus.PENDING.value,
            ) from e
        await self.db.refresh(offer)
        return offer

    async def transition(
        self,
        offer_id: uuid.UUID,
        expected: OfferStatus,
        transition: Transition,
        at: datetime,
    ) -> int:
        """Conditionally move an offer to ``transition.target``.

        Returns the number of rows affected (0 or 1).
        """
        require_utc_timestamp("at", at)
        if not can_move(expected, transition.target):
            raise ValueError(f"{expected.value} -> {transition.target.value} is not a valid transition")

        values = {"status": transition.target.value, "updated_at": at}
        if transition.timestamp_field:
            values[transition.timestamp_field] = at

        result = await self.db.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def due_for_expiry(self, now: datetime, limit: int) -> list[uuid.UUID]:
        """IDs of pending offers whose deadline has passed, oldest deadline first."""
        result = await self.db.execute(
            select(Offer.id)
            .where(
                Offer.status == OfferStatus.PENDING.value,
                Offer.expires_at <= now,
            )
            .order_by(Offer.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        role: OfferRole | None = None,
        status: OfferStatus | None = None,
        listing_id: uuid.UUID | None = None,
        direction: OfferDirection | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Offer], int]:
        conditions = [involvement(user_id, role)]
        if direction is OfferDirection.SENT:
            conditions.append(Offer.proposed_by == user_id)
        elif direction is OfferDirection.RECEIVED:
            conditions.append(Offer.proposed_by != user_id)
        if status is not None:
            conditions.append(Offer.status == status.value)
        if listing_id is not None:
            conditions.append(Offer.listing_id == listing_id)

        count_result = await self.db.execute(
            select(func.count(Offer.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Offer)
            .where(*conditions)
            .order_by(Offer.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def list_expiring(self, user_id: uuid.UUID, cutoff: datetime) -> list[Offer]:
        result = await self.db.execute(
            select(Offer)
            .where(
                involvement(user_id, None),
                Offer.status == OfferStatus.PENDING.value,
                Offer.expires_at <= cutoff,
            )
            .order_by(Offer.expires_at)
        )
        return list(result.scalars().all())

    async def thread_ids(self, offer_id: uuid.UUID) -> list[uuid.UUID]:
        """IDs of every offer in the counter-offer chain containing ``offer_id``."""
        root_id = offer_id
        while True:
            result = await self.db.execute(
                select(Offer.original_offer_id).where(Offer.id == root_id)
            )
            parent_id = result.scalar_one_or_none()
            if parent_id is None:
                break
            root_id = parent_id

        chain = [root_id]
        frontier = [root_id]
        while frontier:
            result = await self.db.execute(
                select(Offer.id).where(Offer.original_offer_id.in_(frontier))
            )
            frontier = list(result.scalars().all())
            chain.extend(frontier)
        return chain


def involvement(user_id: uuid.UUID, role: OfferRole | None):
    if role is OfferRole.BUYER:
        return Offer.buyer_id == user_id
    if role is OfferRole.SELLER:
        return Offer.seller_id == user_id
    return or_(Offer.buyer_id == user_id, Offer.seller_id == user_id)


def _is_pending_duplicate(error: IntegrityError) -> bool:
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == _UNIQUE_VIOLATION:
        return True
    message = str(orig)
    # SQLite names the columns rather than the index
    return PENDING_UNIQUE_INDEX in message or "UNIQUE constraint failed: offers." in message
