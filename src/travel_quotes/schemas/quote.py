"""Request and response bodies for the quote lifecycle endpoints."""

from typing import Any

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import LifecycleError
from ..core.result_types import Err, Ok
from ..models.quote import (
    AgencyOffer,
    ParticipantInput,
    QuoteDetail,
    QuoteListItem,
    QuoteRequest,
)

_FROZEN = ConfigDict(
    frozen=True,
    extra="forbid",
    validate_assignment=True,
    str_strip_whitespace=True,
    validate_default=True,
)


class ActionResult(BaseModel):
    """Uniform outcome of a lifecycle operation."""

    model_config = _FROZEN

    success: bool = Field(..., description="True when the transition was applied")
    error: str | None = Field(default=None, description="Human-readable error message")
    error_code: str | None = Field(default=None, description="Machine-readable error kind")

    @classmethod
    @beartype
    def ok(cls) -> "ActionResult":
        """Successful outcome."""
        return cls(success=True)

    @classmethod
    @beartype
    def from_error(cls, error: LifecycleError) -> "ActionResult":
        """Failed outcome with a non-leaking message."""
        return cls(success=False, error=error.user_message, error_code=error.public_code)

    @classmethod
    def from_result(cls, result: Ok[Any] | Err[LifecycleError]) -> "ActionResult":
        """Collapse a service result into the uniform outcome."""
        if isinstance(result, Err):
            return cls.from_error(result.error)
        return cls.ok()


class AcceptOfferRequest(BaseModel):
    """Body of the accept endpoint."""

    model_config = _FROZEN

    participants: list[ParticipantInput] = Field(default_factory=list)


class DeclineOfferRequest(BaseModel):
    """Body of the decline endpoint."""

    # No whitespace stripping: the motivation is stored as typed.
    model_config = ConfigDict(
        frozen=True, extra="forbid", validate_assignment=True, validate_default=True
    )

    motivation: str | None = Field(default=None, max_length=2000)


class RejectQuoteRequest(BaseModel):
    """Body of the admin reject endpoint."""

    model_config = _FROZEN

    motivation: str = Field(..., max_length=2000)


class OutboxRetryResponse(BaseModel):
    """Outcome of an outbox retry run."""

    model_config = _FROZEN

    attempted: int = Field(..., ge=0)
    delivered: int = Field(..., ge=0)
    still_pending: int = Field(..., ge=0)


class QuoteDetailResponse(BaseModel):
    """A quote request with its history and the next-step hint for the viewer."""

    model_config = _FROZEN

    quote: QuoteDetail
    status_message: str = Field(..., description="Who has to act next")
    action_required: bool = Field(..., description="True when the viewer must act")


class QuoteListResponse(BaseModel):
    """Quote requests of the caller's agency."""

    model_config = _FROZEN

    items: list[QuoteRequest] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class AdminQuoteListResponse(BaseModel):
    """Operator list of requests across agencies."""

    model_config = _FROZEN

    items: list[QuoteListItem] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class AgencyOfferListResponse(BaseModel):
    """Offers received by the caller's agency."""

    model_config = _FROZEN

    items: list[AgencyOffer] = Field(default_factory=list)
    total: int = Field(..., ge=0)
