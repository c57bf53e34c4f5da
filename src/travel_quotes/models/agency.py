"""Agency model: the ownership anchor for quote requests."""

from enum import Enum

from beartype import beartype
from pydantic import Field

from .base import StoredModel


class AgencyStatus(str, Enum):
    """Approval state of an agency account."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


@beartype
class Agency(StoredModel):
    """B2B customer account resolved from the authenticated user."""

    user_id: str = Field(..., min_length=1, description="Authenticating principal id")
    business_name: str = Field(..., min_length=1, max_length=255)
    email: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=120)
    status: AgencyStatus = Field(default=AgencyStatus.PENDING)
