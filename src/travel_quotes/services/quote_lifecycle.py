"""Quote request lifecycle: agency and operator transitions.

Every public operation takes the caller's ``Principal`` explicitly, runs the
authorization guard, checks the transition table, writes the status change
as a compare-and-swap together with its timeline entry in one transaction,
and only then hands notifications to the dispatcher. Public mutations
return an ``ActionResult`` and never raise.
"""

from collections.abc import Callable, Sequence
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID

from attrs import frozen
from beartype import beartype

from ..core.config import Settings
from ..core.errors import (
    LifecycleError,
    QuoteErrorKind,
    conflict,
    not_found,
    store_error,
)
from ..core.logging_utils import get_logger
from ..core.result_types import Err, Ok, Result
from ..models.agency import Agency
from ..models.quote import (
    AgencyOffer,
    OfferCreate,
    ParticipantInput,
    PaymentDetailsCreate,
    PaymentStatus,
    QuoteDetail,
    QuoteFilters,
    QuoteListItem,
    QuoteOffer,
    QuoteParticipant,
    QuotePayment,
    QuoteRequest,
    QuoteStats,
    QuoteStatus,
    QuoteTimelineEntry,
)
from ..schemas.auth import Principal
from ..schemas.quote import ActionResult
from . import email_templates
from .authorization import AuthorizationGuard
from .notifications import (
    EmailMessage,
    NotificationDispatcher,
    Recipient,
    admin_recipients,
)
from .participant_validator import validate_participants
from .quote_status import Transition, check_transition
from .store import PrivilegedStore, ScopedStore, Span, TableGateway
from .timeline import TimelineLogger

logger = get_logger(__name__)

Outcome = Result[list[EmailMessage], LifecycleError]


@frozen
class _MailContext:
    """Names used in email wording, loaded before any write."""

    brand: str
    site_url: str
    agency: Agency | None
    product_name: str

    @property
    def agency_name(self) -> str:
        return self.agency.business_name if self.agency else "Agenzia"

    def agency_recipients(self) -> list[Recipient]:
        if self.agency is None or not self.agency.email:
            return []
        return [Recipient(email=self.agency.email, name=self.agency.business_name)]


class QuoteLifecycleService:
    """State machine engine for quote requests."""

    def __init__(
        self,
        gateway: TableGateway,
        dispatcher: NotificationDispatcher,
        settings: Settings,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize service over one gateway and a notification dispatcher."""
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._settings = settings
        self._today = today
        self._guard = AuthorizationGuard(gateway)
        self._privileged = PrivilegedStore(gateway)
        self._timeline = TimelineLogger()

    # ------------------------------------------------------------------
    # Agency operations
    # ------------------------------------------------------------------

    @beartype
    async def accept_offer(
        self,
        principal: Principal | None,
        request_id: UUID,
        participants: Sequence[ParticipantInput | dict[str, Any]],
    ) -> ActionResult:
        """Accept the current offer and register the participants."""
        return await self._run(
            "accept_offer",
            request_id,
            lambda: self._accept_offer(principal, request_id, participants),
        )

    @beartype
    async def decline_offer(
        self,
        principal: Principal | None,
        request_id: UUID,
        motivation: str | None = None,
    ) -> ActionResult:
        """Decline the current offer, optionally saying why."""
        return await self._run(
            "decline_offer",
            request_id,
            lambda: self._decline_offer(principal, request_id, motivation),
        )

    @beartype
    async def get_agency_quote(
        self, principal: Principal | None, request_id: UUID
    ) -> Result[QuoteDetail, LifecycleError]:
        """Request with offers, participants, payments and timeline (newest first)."""
        authorized = await self._guard.authorize(principal, request_id)
        if isinstance(authorized, Err):
            return authorized
        return await self._load_detail(authorized.value.scoped, request_id)

    @beartype
    async def list_agency_quotes(
        self, principal: Principal | None
    ) -> Result[list[QuoteRequest], LifecycleError]:
        """The caller's agency requests, newest first."""
        resolved = await self._guard.resolve_agency(principal)
        if isinstance(resolved, Err):
            return resolved
        _, scoped = resolved.value
        rows = await scoped.list_requests()
        return Ok([QuoteRequest.from_row(row) for row in rows])

    @beartype
    async def list_agency_offers(
        self, principal: Principal | None
    ) -> Result[list[AgencyOffer], LifecycleError]:
        """Offers received by the caller's agency, newest first."""
        resolved = await self._guard.resolve_agency(principal)
        if isinstance(resolved, Err):
            return resolved
        _, scoped = resolved.value
        requests = {row["id"]: row for row in await scoped.list_requests()}
        offers = await scoped.list_offers()
        titles = await self._privileged.get_product_titles(list(requests.values()))

        items: list[AgencyOffer] = []
        for row in offers:
            if row["request_id"] not in requests:
                continue
            request = QuoteRequest.from_row(requests[row["request_id"]])
            items.append(
                AgencyOffer(
                    offer=QuoteOffer.from_row(row),
                    request_status=request.status,
                    request_type=request.request_type,
                    product_title=titles.get(request.product_id)
                    if request.product_id
                    else None,
                )
            )
        return Ok(items)

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    @beartype
    async def start_review(
        self, principal: Principal | None, request_id: UUID
    ) -> ActionResult:
        """Move a freshly sent request into review."""
        return await self._run(
            "start_review",
            request_id,
            lambda: self._start_review(principal, request_id),
        )

    @beartype
    async def make_offer(
        self, principal: Principal | None, request_id: UUID, offer: OfferCreate
    ) -> ActionResult:
        """Attach a new offer and send it to the agency."""
        return await self._run(
            "make_offer",
            request_id,
            lambda: self._make_offer(principal, request_id, offer),
        )

    @beartype
    async def revoke_offer(
        self, principal: Principal | None, request_id: UUID
    ) -> ActionResult:
        """Withdraw a pending offer; the request goes back to ``sent``."""
        return await self._run(
            "revoke_offer",
            request_id,
            lambda: self._revoke_offer(principal, request_id),
        )

    @beartype
    async def send_payment_details(
        self,
        principal: Principal | None,
        request_id: UUID,
        payment: PaymentDetailsCreate,
    ) -> ActionResult:
        """Send bank transfer details for an accepted offer."""
        return await self._run(
            "send_payment_details",
            request_id,
            lambda: self._send_payment_details(principal, request_id, payment),
        )

    @beartype
    async def confirm(self, principal: Principal | None, request_id: UUID) -> ActionResult:
        """Confirm payment received and the booking."""
        return await self._run(
            "confirm", request_id, lambda: self._confirm(principal, request_id)
        )

    @beartype
    async def reject(
        self, principal: Principal | None, request_id: UUID, motivation: str
    ) -> ActionResult:
        """Reject a non-terminal request with a mandatory motivation."""
        return await self._run(
            "reject",
            request_id,
            lambda: self._reject(principal, request_id, motivation),
        )

    @beartype
    async def get_quote_detail(
        self, principal: Principal | None, request_id: UUID
    ) -> Result[QuoteDetail, LifecycleError]:
        """Operator view of any request."""
        operator = self._guard.require_operator(principal)
        if isinstance(operator, Err):
            return operator
        return await self._load_detail(None, request_id)

    @beartype
    async def list_quotes(
        self, principal: Principal | None, filters: QuoteFilters | None = None
    ) -> Result[list[QuoteListItem], LifecycleError]:
        """Requests of every agency, newest first, with agency and product names."""
        operator = self._guard.require_operator(principal)
        if isinstance(operator, Err):
            return operator

        rows = await self._privileged.list_requests(
            _store_filters(filters or QuoteFilters())
        )
        agencies = await self._privileged.get_agencies([row["agency_id"] for row in rows])
        titles = await self._privileged.get_product_titles(rows)

        items: list[QuoteListItem] = []
        for row in rows:
            agency = agencies.get(row["agency_id"])
            items.append(
                QuoteListItem(
                    request=QuoteRequest.from_row(row),
                    agency_business_name=agency.get("business_name") if agency else None,
                    agency_email=agency.get("email") if agency else None,
                    product_title=titles.get(row.get("product_id")),
                )
            )
        return Ok(items)

    @beartype
    async def quote_stats(
        self, principal: Principal | None
    ) -> Result[QuoteStats, LifecycleError]:
        """Request counts per status."""
        operator = self._guard.require_operator(principal)
        if isinstance(operator, Err):
            return operator
        counts = await self._privileged.count_by_status()
        return Ok(QuoteStats.from_counts({str(k): v for k, v in counts.items()}))

    # ------------------------------------------------------------------
    # Operation bodies
    # ------------------------------------------------------------------

    async def _accept_offer(
        self,
        principal: Principal | None,
        request_id: UUID,
        participants: Sequence[ParticipantInput | dict[str, Any]],
    ) -> Outcome:
        authorized = await self._guard.authorize(principal, request_id)
        if isinstance(authorized, Err):
            return authorized
        request = authorized.value.request

        transition = check_transition("accept_offer", request.status)
        if isinstance(transition, Err):
            return transition

        offer = await self._current_offer(request_id)
        if offer is None:
            return Err(
                LifecycleError(
                    QuoteErrorKind.INVALID_STATE,
                    f"quote request {request_id} has no offer to accept",
                )
            )
        if offer.is_expired(self._today()):
            return Err(
                LifecycleError(
                    QuoteErrorKind.OFFER_EXPIRED,
                    f"offer {offer.id} expired on {offer.offer_expiry}",
                )
            )

        validated = validate_participants(participants)
        if isinstance(validated, Err):
            return validated
        rows = validated.value
        children = sum(1 for row in rows if row.is_child)
        adults = len(rows) - children

        mail = await self._mail_context(request, authorized.value.agency)

        async with self._gateway.transaction() as tx:
            # Participants go in before the status flip.
            inserted = await tx.insert(
                "quote_participants",
                [
                    {
                        "request_id": request_id,
                        "full_name": row.full_name,
                        "age": row.age,
                        "document_type": row.document_type,
                        "document_number": row.document_number,
                        "is_child": row.is_child,
                        "sort_order": index,
                    }
                    for index, row in enumerate(rows)
                ],
            )
            swapped = await self._swap_status(
                tx, request, transition.value, agency_id=request.agency_id
            )
            if isinstance(swapped, Err):
                if inserted:
                    await tx.delete_where(
                        "quote_participants", {"id": [row["id"] for row in inserted]}
                    )
                return swapped

            await self._timeline.append(
                tx,
                request_id,
                "Offerta accettata con partecipanti",
                f"L'agenzia ha accettato l'offerta. {len(rows)} partecipanti "
                f"registrati ({adults} adulti, {children} bambini).",
                transition.value.actor,
            )

        messages = [
            EmailMessage.from_content(
                mail.agency_recipients(),
                email_templates.offer_accepted_agency(
                    mail.brand, mail.site_url, mail.agency_name, mail.product_name
                ),
            ),
            EmailMessage.from_content(
                admin_recipients(self._settings),
                email_templates.offer_accepted_admin(
                    mail.brand,
                    mail.site_url,
                    mail.agency_name,
                    mail.product_name,
                    str(request_id),
                ),
            ),
        ]
        return Ok(messages)

    async def _decline_offer(
        self,
        principal: Principal | None,
        request_id: UUID,
        motivation: str | None,
    ) -> Outcome:
        authorized = await self._guard.authorize(principal, request_id)
        if isinstance(authorized, Err):
            return authorized
        request = authorized.value.request

        transition = check_transition("decline_offer", request.status)
        if isinstance(transition, Err):
            return transition

        # Stored verbatim; blank means absent.
        if motivation is not None and not motivation.strip():
            motivation = None
        details = "L'agenzia ha rifiutato l'offerta."
        if motivation:
            details += f" Motivazione: {motivation}"

        mail = await self._mail_context(request, authorized.value.agency)

        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(
                tx, request, transition.value, agency_id=request.agency_id
            )
            if isinstance(swapped, Err):
                return swapped
            await self._timeline.append(
                tx, request_id, "Offerta rifiutata", details, transition.value.actor
            )

        return Ok(
            [
                EmailMessage.from_content(
                    admin_recipients(self._settings),
                    email_templates.offer_declined_admin(
                        mail.brand,
                        mail.site_url,
                        mail.agency_name,
                        mail.product_name,
                        str(request_id),
                        motivation,
                    ),
                )
            ]
        )

    async def _start_review(
        self, principal: Principal | None, request_id: UUID
    ) -> Outcome:
        loaded = await self._load_for_operator(principal, request_id, "start_review")
        if isinstance(loaded, Err):
            return loaded
        request, transition = loaded.value

        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(tx, request, transition)
            if isinstance(swapped, Err):
                return swapped
            await self._timeline.append(
                tx,
                request_id,
                f'Stato aggiornato a "{transition.target.value}"',
                None,
                transition.actor,
            )
        return Ok([])

    async def _make_offer(
        self, principal: Principal | None, request_id: UUID, offer: OfferCreate
    ) -> Outcome:
        loaded = await self._load_for_operator(principal, request_id, "make_offer")
        if isinstance(loaded, Err):
            return loaded
        request, transition = loaded.value

        details = email_templates.format_price(offer.total_price)
        if offer.total_price is not None:
            details = f"Prezzo totale: {details}"
        if offer.offer_expiry is not None:
            details += f" - Scadenza: {offer.offer_expiry.isoformat()}"

        mail = await self._mail_context(request)

        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(tx, request, transition)
            if isinstance(swapped, Err):
                return swapped
            await tx.insert(
                "quote_offers",
                [
                    {
                        "request_id": request_id,
                        "total_price": offer.total_price,
                        "conditions": offer.conditions,
                        "payment_terms": offer.payment_terms,
                        "offer_expiry": offer.offer_expiry,
                        "package_details": offer.package_details,
                        "notes": offer.notes,
                    }
                ],
            )
            await self._timeline.append(
                tx, request_id, "Offerta inviata all'agenzia", details, transition.actor
            )

        return Ok(
            [
                EmailMessage.from_content(
                    mail.agency_recipients(),
                    email_templates.offer_received(
                        mail.brand,
                        mail.site_url,
                        mail.agency_name,
                        mail.product_name,
                        offer.total_price,
                        offer.offer_expiry,
                    ),
                )
            ]
        )

    async def _revoke_offer(
        self, principal: Principal | None, request_id: UUID
    ) -> Outcome:
        loaded = await self._load_for_operator(principal, request_id, "revoke_offer")
        if isinstance(loaded, Err):
            return loaded
        request, transition = loaded.value
        mail = await self._mail_context(request)

        # Offer rows stay untouched; only the status moves.
        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(tx, request, transition)
            if isinstance(swapped, Err):
                return swapped
            await self._timeline.append(
                tx, request_id, "Offerta revocata", None, transition.actor
            )

        return Ok(
            [
                EmailMessage.from_content(
                    mail.agency_recipients(),
                    email_templates.offer_revoked(
                        mail.brand, mail.site_url, mail.agency_name, mail.product_name
                    ),
                )
            ]
        )

    async def _send_payment_details(
        self,
        principal: Principal | None,
        request_id: UUID,
        payment: PaymentDetailsCreate,
    ) -> Outcome:
        loaded = await self._load_for_operator(
            principal, request_id, "send_payment_details"
        )
        if isinstance(loaded, Err):
            return loaded
        request, transition = loaded.value
        mail = await self._mail_context(request)

        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(tx, request, transition)
            if isinstance(swapped, Err):
                return swapped
            await tx.insert(
                "quote_payments",
                [
                    {
                        "request_id": request_id,
                        "bank_details": payment.bank_details,
                        "amount": payment.amount,
                        "reference": payment.reference,
                        "status": PaymentStatus.PENDING.value,
                    }
                ],
            )
            await self._timeline.append(
                tx,
                request_id,
                "Estremi di pagamento inviati",
                f"Importo: {email_templates.format_price(payment.amount)} - "
                f"Causale: {payment.reference}",
                transition.actor,
            )

        return Ok(
            [
                EmailMessage.from_content(
                    mail.agency_recipients(),
                    email_templates.payment_details(
                        mail.brand,
                        mail.site_url,
                        mail.agency_name,
                        mail.product_name,
                        payment.bank_details,
                        payment.amount,
                        payment.reference,
                    ),
                )
            ]
        )

    async def _confirm(self, principal: Principal | None, request_id: UUID) -> Outcome:
        loaded = await self._load_for_operator(principal, request_id, "confirm")
        if isinstance(loaded, Err):
            return loaded
        request, transition = loaded.value
        mail = await self._mail_context(request)

        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(tx, request, transition)
            if isinstance(swapped, Err):
                return swapped
            pending = await tx.select_where(
                "quote_payments",
                {"request_id": request_id, "status": PaymentStatus.PENDING.value},
            )
            for row in pending:
                await tx.update_where(
                    "quote_payments",
                    row["id"],
                    {"status": PaymentStatus.PENDING.value},
                    {"status": PaymentStatus.CONFIRMED.value},
                )
            await self._timeline.append(
                tx,
                request_id,
                "Pagamento confermato",
                "Prenotazione confermata",
                transition.actor,
            )

        return Ok(
            [
                EmailMessage.from_content(
                    mail.agency_recipients(),
                    email_templates.booking_confirmed(
                        mail.brand, mail.site_url, mail.agency_name, mail.product_name
                    ),
                )
            ]
        )

    async def _reject(
        self, principal: Principal | None, request_id: UUID, motivation: str
    ) -> Outcome:
        loaded = await self._load_for_operator(principal, request_id, "reject")
        if isinstance(loaded, Err):
            return loaded
        request, transition = loaded.value

        motivation = motivation.strip()
        if not motivation:
            return Err(
                LifecycleError(
                    QuoteErrorKind.VALIDATION,
                    "La motivazione è obbligatoria",
                    field_name="motivation",
                )
            )
        mail = await self._mail_context(request)

        async with self._gateway.transaction() as tx:
            swapped = await self._swap_status(tx, request, transition)
            if isinstance(swapped, Err):
                return swapped
            await self._timeline.append(
                tx, request_id, "Richiesta rifiutata", motivation, transition.actor
            )

        return Ok(
            [
                EmailMessage.from_content(
                    mail.agency_recipients(),
                    email_templates.quote_rejected(
                        mail.brand,
                        mail.site_url,
                        mail.agency_name,
                        mail.product_name,
                        motivation,
                    ),
                )
            ]
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        request_id: UUID,
        body: Callable[[], Any],
    ) -> ActionResult:
        """Run an operation body and collapse it into an ``ActionResult``.

        Notifications are dispatched only after the body returned ``Ok``,
        i.e. after its transaction committed.
        """
        try:
            outcome = await body()
        except Exception as e:
            logger.exception("%s failed for request %s", operation, request_id)
            outcome = Err(store_error(f"{operation}: {e}"))

        if isinstance(outcome, Err):
            error = outcome.error
            logger.warning(
                "%s rejected for request %s: %s (%s)",
                operation,
                request_id,
                error.kind.value,
                error.message,
            )
            return ActionResult.from_error(error)

        logger.info("%s applied to request %s", operation, request_id)
        await self._dispatcher.dispatch_all(
            [message for message in outcome.value if message.to]
        )
        return ActionResult.ok()

    async def _load_for_operator(
        self, principal: Principal | None, request_id: UUID, operation: str
    ) -> Result[tuple[QuoteRequest, Transition], LifecycleError]:
        operator = self._guard.require_operator(principal)
        if isinstance(operator, Err):
            return operator

        row = await self._privileged.get_request(request_id)
        if row is None:
            return Err(not_found(request_id))
        request = QuoteRequest.from_row(row)

        transition = check_transition(operation, request.status)
        if isinstance(transition, Err):
            return transition
        return Ok((request, transition.value))

    async def _swap_status(
        self,
        tx: TableGateway,
        request: QuoteRequest,
        transition: Transition,
        agency_id: UUID | None = None,
    ) -> Result[None, LifecycleError]:
        """Compare-and-swap the status away from the row version read earlier.

        ``updated_at`` is part of the predicate, so a request that left and
        re-entered the same status in between is not mistaken for unchanged.
        """
        expected: dict[str, Any] = {
            "status": request.status.value,
            "updated_at": request.updated_at,
        }
        if agency_id is not None:
            expected["agency_id"] = agency_id
        affected = await tx.update_where(
            "quote_requests",
            request.id,
            expected,
            {"status": transition.target.value},
        )
        if affected == 0:
            return Err(conflict(request.id, request.status.value))
        return Ok(None)

    async def _current_offer(self, request_id: UUID) -> QuoteOffer | None:
        rows = await self._privileged.get_offers(request_id)
        if not rows:
            return None
        offers = [QuoteOffer.from_row(row) for row in rows]
        return max(offers, key=lambda offer: offer.created_at)

    async def _mail_context(
        self, request: QuoteRequest, agency: Agency | None = None
    ) -> _MailContext:
        if agency is None:
            row = await self._privileged.get_agency(request.agency_id)
            agency = Agency.from_row(row) if row else None
        title = await self._privileged.get_product_title(
            request.request_type.value, request.product_id
        )
        return _MailContext(
            brand=self._settings.sender_name,
            site_url=self._settings.site_url,
            agency=agency,
            product_name=title or f"Preventivo {str(request.id)[:8].upper()}",
        )

    async def _load_detail(
        self, scoped: ScopedStore | None, request_id: UUID
    ) -> Result[QuoteDetail, LifecycleError]:
        if scoped is not None:
            row = await scoped.get_request(request_id)
        else:
            row = await self._privileged.get_request(request_id)
        if row is None:
            return Err(not_found(request_id))

        return Ok(
            QuoteDetail(
                request=QuoteRequest.from_row(row),
                offers=[
                    QuoteOffer.from_row(r)
                    for r in await self._privileged.get_offers(request_id)
                ],
                participants=[
                    QuoteParticipant.from_row(r)
                    for r in await self._privileged.get_participants(request_id)
                ],
                payments=[
                    QuotePayment.from_row(r)
                    for r in await self._privileged.get_payments(request_id)
                ],
                timeline=[
                    QuoteTimelineEntry.from_row(r)
                    for r in await self._privileged.get_timeline(request_id)
                ],
            )
        )


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _store_filters(filters: QuoteFilters) -> dict[str, Any]:
    """Translate list filters into gateway filters.

    ``offer_sent`` also matches the legacy ``offered`` value. The date range
    covers whole UTC days, ``date_to`` included.
    """
    translated: dict[str, Any] = {}
    if filters.status is not None:
        if filters.status in (QuoteStatus.OFFER_SENT, QuoteStatus.OFFERED):
            translated["status"] = [
                QuoteStatus.OFFER_SENT.value,
                QuoteStatus.OFFERED.value,
            ]
        else:
            translated["status"] = filters.status.value
    if filters.request_type is not None:
        translated["request_type"] = filters.request_type.value
    if filters.agency_id is not None:
        translated["agency_id"] = filters.agency_id
    if filters.date_from is not None or filters.date_to is not None:
        translated["created_at"] = Span(
            start=_day_start(filters.date_from) if filters.date_from else None,
            end=_day_start(filters.date_to + timedelta(days=1))
            if filters.date_to
            else None,
        )
    return translated
