"""Domain models package for the Travel Quotes Backend.

This package exports all Pydantic domain models with strict validation
and immutability.
"""

from .agency import Agency, AgencyStatus
from .base import BaseModelConfig, StoredModel
from .quote import (
    AgencyOffer,
    OfferCreate,
    ParticipantInput,
    PaymentDetailsCreate,
    PaymentStatus,
    QuoteDetail,
    QuoteFilters,
    QuoteListItem,
    QuoteOffer,
    QuoteParticipant,
    QuotePayment,
    QuoteRequest,
    QuoteStats,
    QuoteStatus,
    QuoteTimelineEntry,
    RequestType,
    TimelineActor,
)

__all__ = [
    "Agency",
    "AgencyOffer",
    "AgencyStatus",
    "BaseModelConfig",
    "StoredModel",
    "OfferCreate",
    "ParticipantInput",
    "PaymentDetailsCreate",
    "PaymentStatus",
    "QuoteDetail",
    "QuoteFilters",
    "QuoteListItem",
    "QuoteOffer",
    "QuoteParticipant",
    "QuotePayment",
    "QuoteRequest",
    "QuoteStats",
    "QuoteStatus",
    "QuoteTimelineEntry",
    "RequestType",
    "TimelineActor",
]
