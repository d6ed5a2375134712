"""Append-only offer history.

History is advisory: each append runs inside a SAVEPOINT so a failed write
can be rolled back on its own without undoing the status transition that
preceded it in the same transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from offer_engine.db.models.offer import HistoryAction, Offer, OfferHistory
from offer_engine.offers.store import involvement
from offer_engine.offers.types import OfferRole, Page


@dataclass
class HistoryEntry:
    """A history row as seen from one user's activity feed."""
    entry: OfferHistory
    is_user_action: bool
    user_role: OfferRole


class AuditTrail:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        offer_id: uuid.UUID,
        action: HistoryAction,
        actor_id: uuid.UUID | None,
        details: dict[str, Any],
        at: datetime,
    ) -> OfferHistory:
        entry = OfferHistory(
            offer_id=offer_id,
            action_type=action.value,
            action_by=actor_id,
            action_details=details,
            created_at=at,
        )
        async with self.db.begin_nested():
            self.db.add(entry)
            await self.db.flush()
        return entry

    async def for_offers(
        self,
        offer_ids: list[uuid.UUID],
        action: HistoryAction | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[OfferHistory]:
        """History of the given offers, oldest first."""
        conditions = [OfferHistory.offer_id.in_(offer_ids)]
        if action is not None:
            conditions.append(OfferHistory.action_type == action.value)

        total = (
            await self.db.execute(select(func.count(OfferHistory.id)).where(*conditions))
        ).scalar() or 0

        result = await self.db.execute(
            select(OfferHistory)
            .where(*conditions)
            .order_by(OfferHistory.created_at, OfferHistory.id)
            .limit(limit)
            .offset(offset)
        )
        return Page(items=list(result.scalars().all()), total=total, limit=limit, offset=offset)

    async def for_user(
        self,
        user_id: uuid.UUID,
        role: OfferRole | None = None,
        action: HistoryAction | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[HistoryEntry]:
        """Activity feed across every offer the user is party to, newest first."""
        conditions = [involvement(user_id, role)]
        if action is not None:
            conditions.append(OfferHistory.action_type == action.value)

        total = (
            await self.db.execute(
                select(func.count(OfferHistory.id))
                .join(Offer, Offer.id == OfferHistory.offer_id)
                .where(*conditions)
            )
        ).scalar() or 0

        result = await self.db.execute(
            select(OfferHistory, Offer.buyer_id)
            .join(Offer, Offer.id == OfferHistory.offer_id)
            .where(*conditions)
            .order_by(OfferHistory.created_at.desc(), OfferHistory.id)
            .limit(limit)
            .offset(offset)
        )
        items = [
            HistoryEntry(
                entry=row.OfferHistory,
                is_user_action=row.OfferHistory.action_by == user_id,
                user_role=OfferRole.BUYER if row.buyer_id == user_id else OfferRole.SELLER,
            )
            for row in result.all()
        ]
        return Page(items=items, total=total, limit=limit, offset=offset)
