"""Offer state machine.

    pending -> accepted   (seller)
    pending -> rejected   (seller)
    pending -> withdrawn  (buyer)
    pending -> countered  (buyer or seller, spawns a new pending offer)
    pending -> expired    (system, time based)

Every other status is terminal.
"""

from dataclasses import dataclass
import enum

from offer_engine.db.models.offer import HistoryAction, OfferStatus


class OfferAction(str, enum.Enum):
    """Requested transition on an existing offer."""
    ACCEPT = "accept"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    COUNTER = "counter"
    EXPIRE = "expire"


class Actor(str, enum.Enum):
    """Who may request an action."""
    BUYER = "buyer"
    SELLER = "seller"
    PARTICIPANT = "participant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Transition:
    action: OfferAction
    target: OfferStatus
    history_action: HistoryAction
    allowed_actor: Actor
    # Offer column stamped with the transition time, if any
    timestamp_field: str | None = None


TRANSITIONS: dict[OfferAction, Transition] = {
    OfferAction.ACCEPT: Transition(
        OfferAction.ACCEPT, OfferStatus.ACCEPTED, HistoryAction.ACCEPTED, Actor.SELLER, "accepted_at"
    ),
    OfferAction.REJECT: Transition(
        OfferAction.REJECT, OfferStatus.REJECTED, HistoryAction.REJECTED, Actor.SELLER, "rejected_at"
    ),
    OfferAction.WITHDRAW: Transition(
        OfferAction.WITHDRAW, OfferStatus.WITHDRAWN, HistoryAction.WITHDRAWN, Actor.BUYER
    ),
    OfferAction.COUNTER: Transition(
        OfferAction.COUNTER, OfferStatus.COUNTERED, HistoryAction.COUNTERED, Actor.PARTICIPANT
    ),
    OfferAction.EXPIRE: Transition(
        OfferAction.EXPIRE, OfferStatus.EXPIRED, HistoryAction.EXPIRED, Actor.SYSTEM, "expired_at"
    ),
}

ALLOWED_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.PENDING: frozenset(t.target for t in TRANSITIONS.values()),
    OfferStatus.ACCEPTED: frozenset(),
    OfferStatus.REJECTED: frozenset(),
    OfferStatus.WITHDRAWN: frozenset(),
    OfferStatus.COUNTERED: frozenset(),
    OfferStatus.EXPIRED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Actions a party can request through RespondToOffer
RESPONSE_ACTIONS = frozenset({OfferAction.ACCEPT, OfferAction.REJECT, OfferAction.WITHDRAW})

# Status value a response is expressed as on the wire
RESPONSE_STATUS_TO_ACTION: dict[str, OfferAction] = {
    OfferStatus.ACCEPTED.value: OfferAction.ACCEPT,
    OfferStatus.REJECTED.value: OfferAction.REJECT,
    OfferStatus.WITHDRAWN.value: OfferAction.WITHDRAW,
}


def is_terminal(status: OfferStatus | str) -> bool:
    return OfferStatus(status) in TERMINAL_STATES


def can_move(current: OfferStatus | str, target: OfferStatus | str) -> bool:
    return OfferStatus(target) in ALLOWED_TRANSITIONS[OfferStatus(current)]


def transition_for(action: OfferAction | str) -> Transition:
    return TRANSITIONS[OfferAction(action)]
