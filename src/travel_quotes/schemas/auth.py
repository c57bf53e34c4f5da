# TravelQuotes - B2B Quote Lifecycle Service
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Authentication schemas."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PrincipalRole(str, Enum):
    """Roles carried in access tokens."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    OPERATOR = "operator"
    AGENCY = "agency"


class Principal(BaseModel):
    """Authenticated caller, passed explicitly into every lifecycle operation."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    user_id: str = Field(..., min_length=1, description="Auth user identifier")
    role: PrincipalRole = Field(default=PrincipalRole.AGENCY)
    scopes: list[str] = Field(default_factory=list, description="Permission scopes")
