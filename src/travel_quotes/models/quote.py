"""Quote request domain models: requests, offers, participants, payments, timeline."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import Field, model_validator

from .base import BaseModelConfig, StoredModel


class QuoteStatus(str, Enum):
    """Lifecycle states of a quote request."""

    SENT = "sent"
    IN_REVIEW = "in_review"
    OFFER_SENT = "offer_sent"
    OFFERED = "offered"  # legacy alias of OFFER_SENT
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PAYMENT_SENT = "payment_sent"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class RequestType(str, Enum):
    """Product family a request refers to."""

    TOUR = "tour"
    CRUISE = "cruise"


class TimelineActor(str, Enum):
    """Who performed a timeline action."""

    AGENCY = "agency"
    ADMIN = "admin"
    SYSTEM = "system"


class PaymentStatus(str, Enum):
    """Status of a payment request sent to the agency."""

    PENDING = "pending"
    RECEIVED = "received"
    CONFIRMED = "confirmed"


@beartype
class QuoteRequest(StoredModel):
    """One agency inquiry for one product and one departure."""

    agency_id: UUID = Field(..., description="Owning agency (immutable)")
    request_type: RequestType
    product_id: UUID | None = None
    departure_id: UUID | None = None
    participants_adults: int | None = Field(None, ge=0)
    participants_children: int | None = Field(None, ge=0)
    cabin_type: str | None = Field(None, max_length=100)
    num_cabins: int | None = Field(None, ge=0)
    notes: str | None = None
    status: QuoteStatus
    updated_at: datetime | None = Field(
        None, description="Bumped by every status change; part of the swap predicate"
    )


@beartype
class QuoteOffer(StoredModel):
    """Priced proposal from the operator. Rows are append-only."""

    request_id: UUID
    total_price: Decimal | None = Field(
        None, ge=Decimal("0"), description="None means price on request"
    )
    conditions: str | None = None
    payment_terms: str | None = None
    offer_expiry: date | None = None
    package_details: dict[str, Any] | None = None
    notes: str | None = None

    @beartype
    def is_expired(self, today: date) -> bool:
        """An offer with no expiry never expires; otherwise it is valid through the expiry day."""
        return self.offer_expiry is not None and self.offer_expiry < today


@beartype
class QuoteParticipant(StoredModel):
    """Named traveler registered at acceptance time."""

    request_id: UUID
    full_name: str = Field(..., min_length=1)
    age: int | None = Field(None, ge=0, le=120)
    document_type: str | None = None
    document_number: str | None = None
    is_child: bool = False
    sort_order: int = Field(..., ge=0)


@beartype
class QuotePayment(StoredModel):
    """Bank transfer details sent to the agency."""

    request_id: UUID
    bank_details: str | None = None
    amount: Decimal | None = Field(None, ge=Decimal("0"))
    reference: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING


@beartype
class QuoteTimelineEntry(StoredModel):
    """Immutable audit record of a lifecycle event."""

    request_id: UUID
    action: str = Field(..., min_length=1)
    details: str | None = None
    actor: TimelineActor


@beartype
class ParticipantInput(BaseModelConfig):
    """Participant row as submitted by the agency, before validation."""

    full_name: str = Field(default="", description="Required; checked by the validator")
    age: int | None = Field(None, ge=0, le=120)
    document_type: str | None = Field(None, max_length=50)
    document_number: str | None = Field(None, max_length=50)
    is_child: bool | None = None


@beartype
class OfferCreate(BaseModelConfig):
    """Offer payload sent by the operator."""

    total_price: Decimal | None = Field(
        None, ge=Decimal("0"), decimal_places=2, description="Total price in EUR"
    )
    price_on_request: bool = Field(
        default=False, description="Explicit marker for offers without a price"
    )
    conditions: str | None = None
    payment_terms: str | None = None
    offer_expiry: date | None = None
    package_details: dict[str, Any] | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def require_price_or_marker(self) -> "OfferCreate":
        """An offer carries either a price or the explicit on-request marker."""
        if self.total_price is None and not self.price_on_request:
            raise ValueError("total_price is required unless price_on_request is set")
        if self.total_price is not None and self.price_on_request:
            raise ValueError("total_price and price_on_request are mutually exclusive")
        return self


@beartype
class PaymentDetailsCreate(BaseModelConfig):
    """Bank transfer details the operator sends after acceptance."""

    bank_details: str = Field(..., min_length=1, description="IBAN / bank coordinates")
    amount: Decimal = Field(..., gt=Decimal("0"), decimal_places=2)
    reference: str = Field(..., min_length=1, description="Transfer reference")


@beartype
class QuoteDetail(BaseModelConfig):
    """A request with its offers, participants, payments and timeline."""

    request: QuoteRequest
    offers: list[QuoteOffer] = Field(default_factory=list)
    participants: list[QuoteParticipant] = Field(default_factory=list)
    payments: list[QuotePayment] = Field(default_factory=list)
    timeline: list[QuoteTimelineEntry] = Field(default_factory=list)

    @property
    def current_offer(self) -> QuoteOffer | None:
        """Latest offer by creation time."""
        if not self.offers:
            return None
        return max(self.offers, key=lambda offer: offer.created_at)


@beartype
class QuoteFilters(BaseModelConfig):
    """Operator list filters; every field is optional."""

    status: QuoteStatus | None = None
    request_type: RequestType | None = None
    agency_id: UUID | None = None
    date_from: date | None = Field(None, description="Created on or after this day")
    date_to: date | None = Field(None, description="Created on or before this day")


@beartype
class QuoteListItem(BaseModelConfig):
    """Row of the operator request list."""

    request: QuoteRequest
    agency_business_name: str | None = None
    agency_email: str | None = None
    product_title: str | None = None


@beartype
class QuoteStats(BaseModelConfig):
    """Request counts per status. ``offered`` is counted as ``offer_sent``."""

    total: int = Field(0, ge=0)
    sent: int = Field(0, ge=0)
    in_review: int = Field(0, ge=0)
    offer_sent: int = Field(0, ge=0)
    accepted: int = Field(0, ge=0)
    declined: int = Field(0, ge=0)
    payment_sent: int = Field(0, ge=0)
    confirmed: int = Field(0, ge=0)
    rejected: int = Field(0, ge=0)

    @classmethod
    @beartype
    def from_counts(cls, counts: dict[str, int]) -> "QuoteStats":
        """Build from raw ``status -> count`` pairs; unknown statuses only add to the total."""
        values: dict[str, int] = {"total": sum(counts.values())}
        for status, total in counts.items():
            key = (
                QuoteStatus.OFFER_SENT.value
                if status == QuoteStatus.OFFERED.value
                else status
            )
            if key in cls.model_fields and key != "total":
                values[key] = values.get(key, 0) + total
        return cls(**values)


@beartype
class AgencyOffer(BaseModelConfig):
    """An offer received by the agency, with the request it answers."""

    offer: QuoteOffer
    request_status: QuoteStatus
    request_type: RequestType
    product_title: str | None = None
