# TravelQuotes - B2B Quote Lifecycle Service
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Base Pydantic model configuration for all domain models.

Rows coming back from the store are plain mappings; domain models are built
from them with ``from_row`` so that every value crossing the service boundary
is validated and immutable.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field


@beartype
class BaseModelConfig(BaseModel):
    """Base model with strict configuration for all domain entities.

    Enforces:
    - Immutability (frozen=True)
    - No extra fields allowed (extra="forbid")
    - Validation on assignment
    - Automatic whitespace stripping
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
class StoredModel(BaseModelConfig):
    """Base model for rows read back from the store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    id: UUID = Field(..., description="Unique identifier for the row")
    created_at: datetime = Field(..., description="Timestamp when the row was created")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StoredModel":
        """Build the model from a store row, ignoring columns it does not declare."""
        return cls.model_validate(dict(row))
