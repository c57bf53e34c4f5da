"""Health check endpoint."""

from datetime import datetime, timezone

from beartype import beartype
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from ...core.config import Settings, get_settings
from ...core.database import Database, get_database
from ...core.logging_utils import get_logger

logger = get_logger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Overall service health."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    status: str = Field(..., pattern=r"^(healthy|unhealthy)$")
    timestamp: datetime
    environment: str
    database: str = Field(..., description="Database status message")


@router.get("/health", response_model=HealthResponse)
@beartype
async def health_check(
    response: Response,
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_database),
) -> HealthResponse:
    """Report whether the database pool answers."""
    result = await db.health_check()
    healthy = result.is_ok() and result.ok_value is True
    if not healthy:
        logger.warning("Health check failed: %s", result.err_value)
        response.status_code = 503

    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        environment=settings.api_env,
        database="ok" if healthy else str(result.err_value or "unexpected reply"),
    )
