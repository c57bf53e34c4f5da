# TravelQuotes - B2B Quote Lifecycle Service
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI dependencies for authentication, storage and services.

The principal is resolved here and handed to the lifecycle service
explicitly; a missing or invalid token yields ``None`` and the service
answers with an ``unauthenticated`` result.
"""

from beartype import beartype
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.config import Settings, get_settings
from ..core.database import get_database
from ..core.security import get_security
from ..schemas.auth import Principal
from ..services.notifications import BrevoNotifier, NotificationDispatcher, Notifier
from ..services.quote_lifecycle import QuoteLifecycleService
from ..services.store import PostgresGateway, TableGateway

# Security scheme; missing credentials are reported by the service layer
security = HTTPBearer(auto_error=False)


@beartype
async def get_gateway() -> TableGateway:
    """Provide the Postgres table gateway over the shared pool."""
    return PostgresGateway(get_database())


@beartype
async def get_notifier(settings: Settings = Depends(get_settings)) -> Notifier:
    """Provide the Brevo email notifier."""
    return BrevoNotifier.from_settings(settings)


@beartype
async def get_dispatcher(
    notifier: Notifier = Depends(get_notifier),
    gateway: TableGateway = Depends(get_gateway),
) -> NotificationDispatcher:
    """Provide the notification dispatcher backed by the outbox."""
    return NotificationDispatcher(notifier, gateway)


@beartype
async def get_lifecycle_service(
    gateway: TableGateway = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> QuoteLifecycleService:
    """Provide the quote lifecycle service."""
    return QuoteLifecycleService(gateway, dispatcher, settings)


@beartype
async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Security(security),
) -> Principal | None:
    """Decode the bearer token into a principal, or ``None``."""
    if credentials is None:
        return None
    return get_security().principal_from_token(credentials.credentials)
