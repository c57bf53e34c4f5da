"""API v1 router aggregation.

This module combines all v1 API routers into a single router
that can be mounted on the main FastAPI application.
"""

from fastapi import APIRouter

from .admin_quotes import router as admin_quotes_router
from .agency_quotes import router as agency_quotes_router
from .health import router as health_router

# Create main v1 router
router = APIRouter(prefix="/api/v1")

# Include all sub-routers
router.include_router(health_router, tags=["health"])
router.include_router(agency_quotes_router, tags=["agency-quotes"])
router.include_router(admin_quotes_router, tags=["admin-quotes"])


__all__ = ["router"]
