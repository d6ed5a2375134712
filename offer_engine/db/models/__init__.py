"""Database models"""

from offer_engine.db.models.listing import Listing, ListingStatus
from offer_engine.db.models.offer import HistoryAction, Offer, OfferHistory, OfferStatus

__all__ = [
    "Listing",
    "ListingStatus",
    "Offer",
    "OfferStatus",
    "OfferHistory",
    "HistoryAction",
]
