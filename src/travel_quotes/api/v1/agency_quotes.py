"""Agency-facing quote endpoints: list, view, accept and decline offers."""

from uuid import UUID

from fastapi import APIRouter, Depends, Response

from ...schemas.auth import Principal
from ...schemas.quote import (
    AcceptOfferRequest,
    ActionResult,
    AgencyOfferListResponse,
    DeclineOfferRequest,
    QuoteDetailResponse,
    QuoteListResponse,
)
from ...services.quote_lifecycle import QuoteLifecycleService
from ...services.quote_status import status_guidance
from ..dependencies import get_current_principal, get_lifecycle_service
from ..response_patterns import handle_action, handle_result

router = APIRouter(prefix="/agency/quotes")


@router.get("", response_model=QuoteListResponse | ActionResult)
async def list_quotes(
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> QuoteListResponse | ActionResult:
    """List the caller's quote requests, newest first."""
    result = await service.list_agency_quotes(principal)
    quotes = handle_result(result, response)
    if isinstance(quotes, ActionResult):
        return quotes
    return QuoteListResponse(items=quotes, total=len(quotes))


@router.get("/offers", response_model=AgencyOfferListResponse | ActionResult)
async def list_offers(
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> AgencyOfferListResponse | ActionResult:
    """Offers received by the caller's agency, newest first."""
    offers = handle_result(await service.list_agency_offers(principal), response)
    if isinstance(offers, ActionResult):
        return offers
    return AgencyOfferListResponse(items=offers, total=len(offers))


@router.get("/{request_id}", response_model=QuoteDetailResponse | ActionResult)
async def get_quote(
    request_id: UUID,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> QuoteDetailResponse | ActionResult:
    """Get one request with offers, participants and timeline."""
    result = await service.get_agency_quote(principal, request_id)
    detail = handle_result(result, response)
    if isinstance(detail, ActionResult):
        return detail

    guidance = status_guidance(detail.request.status)
    return QuoteDetailResponse(
        quote=detail,
        status_message=guidance.agency_message,
        action_required=guidance.agency_action_required,
    )


@router.post("/{request_id}/accept", response_model=ActionResult)
async def accept_offer(
    request_id: UUID,
    body: AcceptOfferRequest,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Accept the current offer and register participants."""
    result = await service.accept_offer(principal, request_id, body.participants)
    return handle_action(result, response)


@router.post("/{request_id}/decline", response_model=ActionResult)
async def decline_offer(
    request_id: UUID,
    body: DeclineOfferRequest,
    response: Response,
    principal: Principal | None = Depends(get_current_principal),
    service: QuoteLifecycleService = Depends(get_lifecycle_service),
) -> ActionResult:
    """Decline the current offer."""
    result = await service.decline_offer(principal, request_id, body.motivation)
    return handle_action(result, response)
