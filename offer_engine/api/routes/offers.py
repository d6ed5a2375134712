"""Offer negotiation routes"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
import uuid

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from offer_engine.api.dependencies import CurrentUserId, Negotiations, with_deadline
from offer_engine.core.timeutils import as_utc
from offer_engine.db.models.offer import Offer, OfferHistory
from offer_engine.offers.audit import HistoryEntry
from offer_engine.offers.transitions import RESPONSE_STATUS_TO_ACTION
from offer_engine.offers.types import OfferOutcome, OfferTerms

router = APIRouter()


class TermsPayload(BaseModel):
    cash_offer: bool = False
    financing_needed: bool = False
    inspection_contingency: bool = True

    def to_terms(self) -> OfferTerms:
        return OfferTerms(
            cash_offer=self.cash_offer,
            financing_needed=self.financing_needed,
            inspection_contingency=self.inspection_contingency,
        )


class OfferCreate(BaseModel):
    listing_id: uuid.UUID
    offer_amount: Decimal
    message: str | None = Field(default=None, max_length=2000)
    terms: TermsPayload = Field(default_factory=TermsPayload)


class CounterOfferCreate(BaseModel):
    offer_amount: Decimal
    message: str | None = Field(default=None, max_length=2000)
    terms: TermsPayload = Field(default_factory=TermsPayload)


class OfferRespond(BaseModel):
    status: Literal["accepted", "rejected", "withdrawn"]
    rejection_reason: str | None = Field(default=None, max_length=1000)


class OfferResponse(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    proposed_by: str
    offer_amount: str
    message: str | None
    terms: dict[str, bool]
    status: str
    original_offer_id: str | None
    counter_offer_count: int
    is_counter_offer: bool
    expires_at: datetime
    accepted_at: datetime | None
    rejected_at: datetime | None
    expired_at: datetime | None
    created_at: datetime
    updated_at: datetime


class SideEffectResponse(BaseModel):
    name: str
    ok: bool
    error: str | None = None


class OfferOutcomeResponse(BaseModel):
    offer: OfferResponse
    retired_offer: OfferResponse | None = None
    side_effects: list[SideEffectResponse]
    fully_applied: bool


class OfferListResponse(BaseModel):
    offers: list[OfferResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class HistoryResponse(BaseModel):
    id: str
    offer_id: str
    action_type: str
    action_by: str | None
    action_details: dict[str, Any]
    created_at: datetime
    is_user_action: bool | None = None
    user_role: str | None = None


class HistoryListResponse(BaseModel):
    history: list[HistoryResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


def _optional_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _offer_to_response(o: Offer) -> OfferResponse:
    return OfferResponse(
        id=str(o.id),
        listing_id=str(o.listing_id),
        buyer_id=str(o.buyer_id),
        seller_id=str(o.seller_id),
        proposed_by=str(o.proposed_by),
        offer_amount=str(o.offer_amount),
        message=o.message,
        terms=o.terms.to_dict(),
        status=o.status,
        original_offer_id=str(o.original_offer_id) if o.original_offer_id else None,
        counter_offer_count=o.counter_offer_count,
        is_counter_offer=o.is_counter_offer,
        expires_at=as_utc(o.expires_at),
        accepted_at=_optional_utc(o.accepted_at),
        rejected_at=_optional_utc(o.rejected_at),
        expired_at=_optional_utc(o.expired_at),
        created_at=as_utc(o.created_at),
        updated_at=as_utc(o.updated_at),
    )


def _outcome_to_response(outcome: OfferOutcome) -> OfferOutcomeResponse:
    return OfferOutcomeResponse(
        offer=_offer_to_response(outcome.offer),
        retired_offer=_offer_to_response(outcome.retired_offer) if outcome.retired_offer else None,
        side_effects=[
            SideEffectResponse(name=e.name, ok=e.ok, error=e.error) for e in outcome.side_effects
        ],
        fully_applied=outcome.fully_applied,
    )


def _history_to_response(h: OfferHistory, entry: HistoryEntry | None = None) -> HistoryResponse:
    return HistoryResponse(
        id=str(h.id),
        offer_id=str(h.offer_id),
        action_type=h.action_type,
        action_by=str(h.action_by) if h.action_by else None,
        action_details=h.action_details or {},
        created_at=as_utc(h.created_at),
        is_user_action=entry.is_user_action if entry else None,
        user_role=entry.user_role.value if entry else None,
    )


@router.get("", response_model=OfferListResponse)
async def list_offers(
    user_id: CurrentUserId,
    service: Negotiations,
    type: Literal["sent", "received"] | None = None,
    status: str | None = None,
    listing_id: uuid.UUID | None = None,
    limit: int | None = None,
    offset: int = 0,
):
    """List offers the current user sent or received."""
    page = await with_deadline(
        service.list_offers(
            user_id,
            direction=type,
            status=status,
            listing_id=listing_id,
            limit=limit,
            offset=offset,
        )
    )
    return OfferListResponse(
        offers=[_offer_to_response(o) for o in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.post("", response_model=OfferOutcomeResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(data: OfferCreate, user_id: CurrentUserId, service: Negotiations):
    """Make an offer on a listing."""
    outcome = await with_deadline(
        service.create_offer(
            user_id,
            data.listing_id,
            data.offer_amount,
            terms=data.terms.to_terms(),
            message=data.message,
        )
    )
    return _outcome_to_response(outcome)


@router.get("/expiring", response_model=list[OfferResponse])
async def list_expiring_offers(
    user_id: CurrentUserId,
    service: Negotiations,
    hours: int = Query(default=24),
):
    """Pending offers involving the current user that expire within ``hours``."""
    offers = await with_deadline(service.list_expiring_offers(user_id, hours_ahead=hours))
    return [_offer_to_response(o) for o in offers]


@router.get("/history", response_model=HistoryListResponse)
async def get_user_history(
    user_id: CurrentUserId,
    service: Negotiations,
    type: str | None = None,
    action_type: str | None = None,
    limit: int | None = None,
    offset: int = 0,
):
    """Activity across every offer the current user is party to."""
    page = await with_deadline(
        service.get_user_history(
            user_id, role=type, action_type=action_type, limit=limit, offset=offset
        )
    )
    return HistoryListResponse(
        history=[_history_to_response(e.entry, e) for e in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(offer_id: uuid.UUID, user_id: CurrentUserId, service: Negotiations):
    offer = await with_deadline(service.get_offer(user_id, offer_id))
    return _offer_to_response(offer)


@router.post(
    "/{offer_id}/counter",
    response_model=OfferOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_counter_offer(
    offer_id: uuid.UUID,
    data: CounterOfferCreate,
    user_id: CurrentUserId,
    service: Negotiations,
):
    """Counter a pending offer with a new amount."""
    outcome = await with_deadline(
        service.create_counter_offer(
            user_id,
            offer_id,
            data.offer_amount,
            terms=data.terms.to_terms(),
            message=data.message,
        )
    )
    return _outcome_to_response(outcome)


@router.patch("/{offer_id}", response_model=OfferOutcomeResponse)
async def respond_to_offer(
    offer_id: uuid.UUID,
    data: OfferRespond,
    user_id: CurrentUserId,
    service: Negotiations,
):
    """Accept, reject or withdraw a pending offer."""
    outcome = await with_deadline(
        service.respond_to_offer(
            user_id,
            offer_id,
            RESPONSE_STATUS_TO_ACTION[data.status],
            rejection_reason=data.rejection_reason,
        )
    )
    return _outcome_to_response(outcome)


@router.get("/{offer_id}/history", response_model=HistoryListResponse)
async def get_offer_history(
    offer_id: uuid.UUID,
    user_id: CurrentUserId,
    service: Negotiations,
    thread: bool = False,
    action_type: str | None = None,
    limit: int | None = None,
    offset: int = 0,
):
    """History of one offer, or of its whole counter-offer thread."""
    page = await with_deadline(
        service.get_offer_history(
            user_id,
            offer_id,
            action_type=action_type,
            thread=thread,
            limit=limit,
            offset=offset,
        )
    )
    return HistoryListResponse(
        history=[_history_to_response(h) for h in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )
