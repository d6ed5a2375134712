"""Listing model (owned by the catalog; the engine reads it and flips the sold state)"""

from datetime import datetime, timezone
from decimal import Decimal
import uuid

from sqlalchemy import String, DateTime, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column
import enum

from offer_engine.db.base import Base


class ListingStatus(str, enum.Enum):
    """Catalog listing status."""
    DRAFT = "draft"
    ACTIVE = "active"
    SOLD = "sold"
    INACTIVE = "inactive"


class Listing(Base):
    """An item offered for sale."""

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    title: Mapped[str] = mapped_column(String(255))
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ListingStatus.ACTIVE.value, index=True
    )

    sold_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    sold_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Listing {self.id} ({self.status})>"
