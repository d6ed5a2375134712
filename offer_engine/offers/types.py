"""Value types shared by the negotiation components"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
import enum

from offer_engine.db.models.offer import Offer

T = TypeVar("T")


@dataclass(frozen=True)
class OfferTerms:
    cash_offer: bool = False
    financing_needed: bool = False
    inspection_contingency: bool = True

    def to_dict(self) -> dict[str, bool]:
        return {
            "cash_offer": self.cash_offer,
            "financing_needed": self.financing_needed,
            "inspection_contingency": self.inspection_contingency,
        }


class OfferRole(str, enum.Enum):
    """Which side of an offer a user is on."""
    BUYER = "buyer"
    SELLER = "seller"


class OfferDirection(str, enum.Enum):
    """Whether a user made an offer or is being asked to answer it."""
    SENT = "sent"
    RECEIVED = "received"


@dataclass
class SideEffectResult:
    """Outcome of a secondary, best-effort effect of an operation."""
    name: str
    ok: bool
    error: str | None = None


@dataclass
class OfferOutcome:
    """Primary result of a negotiation operation plus its secondary effects.

    ``offer`` is the committed state. ``retired_offer`` is set when a
    counter-offer retired its predecessor. Failed entries in
    ``side_effects`` never imply the primary change was undone.
    """
    offer: Offer
    retired_offer: Offer | None = None
    side_effects: list[SideEffectResult] = field(default_factory=list)
    events: list[Any] = field(default_factory=list)

    @property
    def fully_applied(self) -> bool:
        return all(effect.ok for effect in self.side_effects)

    def record(self, name: str, error: Exception | None = None) -> None:
        self.side_effects.append(
            SideEffectResult(name=name, ok=error is None, error=str(error) if error else None)
        )


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.total > self.offset + self.limit
