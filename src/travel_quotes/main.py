"""Travel Quotes Backend - Main Application Module."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from beartype import beartype
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .api.v1 import router as v1_router
from .core.config import get_settings
from .core.database import get_database
from .core.logging_utils import configure_logging, get_logger

logger = get_logger(__name__)


class APIInfo(BaseModel):
    """Root endpoint payload."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    name: str
    version: str
    status: str
    environment: str


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    # Startup
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.api_env)

    # Initialize database pool
    db = get_database()
    await db.connect()
    logger.info("Database connection pool initialized")

    yield

    # Shutdown
    logger.info("Shutting down %s", settings.app_name)
    await db.disconnect()
    logger.info("Database connections closed")


@beartype
def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    configure_logging()
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Quote request lifecycle and offer negotiation for B2B travel agencies",
        version="1.0.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(v1_router)

    # Root endpoint
    @app.get("/")
    async def root() -> APIInfo:
        """Root endpoint returning API information."""
        return APIInfo(
            name=settings.app_name,
            version="1.0.0",
            status="operational",
            environment=settings.api_env,
        )

    return app


# Create the application instance
app = create_app()


@beartype
def main() -> None:
    """Run the main application entry point."""
    settings = get_settings()

    uvicorn.run(
        "travel_quotes.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="info" if not settings.is_production else "error",
    )


if __name__ == "__main__":
    main()
