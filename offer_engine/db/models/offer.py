"""Offer and offer history models"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column
import enum

from offer_engine.db.base import Base

if TYPE_CHECKING:
    from offer_engine.offers.types import OfferTerms


class OfferStatus(str, enum.Enum):
    """Offer status. PENDING is the only non-terminal value."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    COUNTERED = "countered"
    EXPIRED = "expired"


class HistoryAction(str, enum.Enum):
    """Offer history action types."""
    CREATED = "created"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OfferStatus)
_ACTION_VALUES = ", ".join(f"'{a.value}'" for a in HistoryAction)


class Offer(Base):
    """One node of a buyer/seller negotiation thread on a listing."""

    __tablename__ = "offers"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_offers_status"),
        CheckConstraint("offer_amount > 0", name="ck_offers_amount_positive"),
        CheckConstraint("counter_offer_count >= 0", name="ck_offers_counter_count"),
        Index("ix_offers_listing_buyer_status", "listing_id", "buyer_id", "status"),
        Index("ix_offers_status_expires_at", "status", "expires_at"),
        # At most one pending offer per listing and pair of parties
        Index(
            "uq_offers_pending_listing_parties",
            "listing_id",
            "buyer_id",
            "seller_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="RESTRICT"),
        index=True,
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    # The party who made this offer: the buyer, or whoever countered
    proposed_by: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)

    offer_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Terms
    cash_offer: Mapped[bool] = mapped_column(Boolean, default=False)
    financing_needed: Mapped[bool] = mapped_column(Boolean, default=False)
    inspection_contingency: Mapped[bool] = mapped_column(Boolean, default=True)

    status: Mapped[str] = mapped_column(
        String(20), default=OfferStatus.PENDING.value
    )

    # Counter-offer chain
    original_offer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("offers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    counter_offer_count: Mapped[int] = mapped_column(Integer, default=0)
    is_counter_offer: Mapped[bool] = mapped_column(Boolean, default=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def terms(self) -> "OfferTerms":
        from offer_engine.offers.types import OfferTerms

        return OfferTerms(
            cash_offer=self.cash_offer,
            financing_needed=self.financing_needed,
            inspection_contingency=self.inspection_contingency,
        )

    def __repr__(self) -> str:
        return f"<Offer {self.id} {self.offer_amount} ({self.status})>"


class OfferHistory(Base):
    """Append-only record of one offer transition or creation."""

    __tablename__ = "offer_history"
    __table_args__ = (
        CheckConstraint(f"action_type IN ({_ACTION_VALUES})", name="ck_offer_history_action"),
        Index("ix_offer_history_offer_created", "offer_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("offers.id", ondelete="RESTRICT"),
    )
    action_type: Mapped[str] = mapped_column(String(20))
    # NULL means the system (expiration) acted
    action_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    action_details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<OfferHistory {self.offer_id} {self.action_type}>"
