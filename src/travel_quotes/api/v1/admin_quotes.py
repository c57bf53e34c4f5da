"""Operator-facing quote endpoints driving the admin side of the lifecycle."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from ...core.config import Settings, get_settings
from ...models.quote import (
    OfferCreate,
    PaymentDetailsCreate,
    QuoteFilters,
    QuoteStats,
    QuoteStatus,
    RequestType,
)
from ...schemas.auth import Principal
from ...schemas.quote import (
    ActionResult,
    AdminQuoteListResponse,
    OutboxRetryResponse,
    QuoteDetailResponse,
    RejectQuoteRequest,
)
from ...services.authorization import AuthorizationGuard
from ...services.notifications import NotificationDispatcher
from ...services.quote_lifecycle import QuoteLifecycleService
from ...services.quote_status import status_guidance
from ...services.store import TableGateway
from ..dependencies import (
    get_current_principal,
    get_dispatcher,
    get_gateway,
    get_lifecycle_service,
)
from ..response_patterns import handle_action, handle_result

router = APIRouter(prefix="/admin")


@router.get("/quotes", response_model=AdminQuoteListResponse | ActionResult)
async def list_quotes(
    response: Response,
    status: QuoteStatus | None = None,
    request_type: RequestType | None = None,
    agency_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> AdminQuoteListResponse | ActionResult:
    """List requests of every agency, newest first."""
    filters = QuoteFilters(
        status=status,
        request_type=request_type,
        agency_id=agency_id,
        date_from=date_from,
        date_to=date_to,
    )
    quotes = handle_result(await service.list_quotes(principal, filters), response)
    if isinstance(quotes, ActionResult):
        return quotes
    return AdminQuoteListResponse(items=quotes, total=len(quotes))


@router.get("/quotes/stats", response_model=QuoteStats | ActionResult)
async def quote_stats(
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> QuoteStats | ActionResult:
    """Request counts per status."""
    return handle_result(await service.quote_stats(principal), response)


@router.get("/quotes/{request_id}", response_model=QuoteDetailResponse | ActionResult)
async def get_quote_detail(
    request_id: UUID,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> QuoteDetailResponse | ActionResult:
    """Operator view of a request."""
    result = await service.get_quote_detail(principal, request_id)
    detail = handle_result(result, response)
    if isinstance(detail, ActionResult):
        return detail

    guidance = status_guidance(detail.request.status)
    return QuoteDetailResponse(
        quote=detail,
        status_message=guidance.admin_message,
        action_required=guidance.admin_action_required,
    )


@router.post("/quotes/{request_id}/review", response_model=ActionResult)
async def start_review(
    request_id: UUID,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Move a request into review."""
    return handle_action(await service.start_review(principal, request_id), response)


@router.post("/quotes/{request_id}/offers", response_model=ActionResult)
async def make_offer(
    request_id: UUID,
    offer: OfferCreate,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Attach a new offer and notify the agency."""
    result = await service.make_offer(principal, request_id, offer)
    return handle_action(result, response, success_status=201)


@router.post("/quotes/{request_id}/revoke", response_model=ActionResult)
async def revoke_offer(
    request_id: UUID,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Withdraw the pending offer."""
    return handle_action(await service.revoke_offer(principal, request_id), response)


@router.post("/quotes/{request_id}/payment", response_model=ActionResult)
async def send_payment_details(
    request_id: UUID,
    payment: PaymentDetailsCreate,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Send bank transfer details to the agency."""
    result = await service.send_payment_details(principal, request_id, payment)
    return handle_action(result, response)


@router.post("/quotes/{request_id}/confirm", response_model=ActionResult)
async def confirm(
    request_id: UUID,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Confirm payment and booking."""
    return handle_action(await service.confirm(principal, request_id), response)


@router.post("/quotes/{request_id}/reject", response_model=ActionResult)
async def reject(
    request_id: UUID,
    body: RejectQuoteRequest,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Reject a request with a motivation."""
    result = await service.reject(principal, request_id, body.motivation)
    return handle_action(result, response)


@router.post(
    "/notifications/retry", response_model=OutboxRetryResponse | ActionResult
)
async def retry_notifications(
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    gateway: TableGateway = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> OutboxRetryResponse | ActionResult:
    """Re-send emails parked in the outbox."""
    operator = AuthorizationGuard(gateway).require_operator(principal)
    if operator.is_err():
        return handle_result(operator, response)

    stats = await dispatcher.retry_pending(settings.outbox_retry_batch_size)
    return OutboxRetryResponse(
        attempted=stats.attempted,
        delivered=stats.delivered,
        still_pending=stats.still_pending,
    )
