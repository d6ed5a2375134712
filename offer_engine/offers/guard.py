"""Authorization guard for offer transitions.

Pure function of the actor, the already-loaded offer and the requested
action. It never touches storage.
"""

from dataclasses import dataclass
import uuid

from offer_engine.db.models.offer import Offer
from offer_engine.offers.transitions import Actor, OfferAction, transition_for


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision(allowed=True)

_DENIAL_REASONS = {
    Actor.BUYER: "Only the buyer can {verb} an offer",
    Actor.SELLER: "Only the seller can {verb} an offer",
    Actor.PARTICIPANT: "You can only {verb} offers you are involved in",
    Actor.SYSTEM: "Offers can only {verb} automatically",
}


def _is_participant(actor_id: uuid.UUID, offer: Offer) -> bool:
    return actor_id in (offer.buyer_id, offer.seller_id)


def can_transition(actor_id: uuid.UUID | None, offer: Offer, action: OfferAction | str) -> Decision:
    """Decide whether ``actor_id`` may apply ``action`` to ``offer``.

    ``actor_id`` of None stands for the system (the expiration sweeper).
    """
    transition = transition_for(action)
    required = transition.allowed_actor

    if required is Actor.SYSTEM:
        allowed = actor_id is None
    elif actor_id is None:
        allowed = False
    elif required is Actor.BUYER:
        allowed = actor_id == offer.buyer_id
    elif required is Actor.SELLER:
        allowed = actor_id == offer.seller_id
    else:
        allowed = _is_participant(actor_id, offer)

    if allowed:
        return ALLOWED
    return Decision(
        allowed=False,
        reason=_DENIAL_REASONS[required].format(verb=transition.action.value),
    )


def can_view(actor_id: uuid.UUID, offer: Offer) -> Decision:
    """Offers and their history are visible to their two parties only."""
    if _is_participant(actor_id, offer):
        return ALLOWED
    return Decision(allowed=False, reason="You can only view offers you are involved in")
