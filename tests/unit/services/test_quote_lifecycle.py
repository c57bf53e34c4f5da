"""Unit tests for the quote lifecycle service."""

import asyncio
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from travel_quotes.core.result_types import Err, Ok
from travel_quotes.models.quote import (
    OfferCreate,
    PaymentDetailsCreate,
    QuoteFilters,
    QuoteStatus,
    RequestType,
)
from travel_quotes.schemas.auth import Principal, PrincipalRole

MARIA_AND_LUCA = [
    {"full_name": "Maria Rossi", "is_child": False},
    {"full_name": "Luca Rossi", "is_child": True},
]


def _status(gateway, request):
    return gateway.rows("quote_requests", id=request["id"])[0]["status"]


class TestAcceptOffer:
    """Agency acceptance of the current offer."""

    async def test_accept_registers_participants(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """Participants are stored in order and the counts reach the timeline."""
        request = seeder.request(agency)
        seeder.offer(request, total_price=Decimal("1200.00"), offer_expiry=None)

        result = await service.accept_offer(
            agency_principal, request["id"], MARIA_AND_LUCA
        )

        assert result.success is True
        assert result.error is None
        assert _status(gateway, request) == "accepted"

        participants = sorted(
            gateway.rows("quote_participants", request_id=request["id"]),
            key=lambda row: row["sort_order"],
        )
        assert [(p["full_name"], p["is_child"], p["sort_order"]) for p in participants] == [
            ("Maria Rossi", False, 0),
            ("Luca Rossi", True, 1),
        ]

        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert len(timeline) == 1
        assert timeline[0]["action"] == "Offerta accettata con partecipanti"
        assert timeline[0]["actor"] == "agency"
        assert "2 partecipanti registrati (1 adulti, 1 bambini)" in timeline[0]["details"]

        assert notifier.subjects() == [
            "Offerta accettata - MishaTravel",
            "Offerta accettata da Viaggi Rossi",
        ]
        assert [r.email for r in notifier.sent[0].to] == ["booking@viaggirossi.it"]
        assert [r.email for r in notifier.sent[1].to] == [
            "ops@mishatravel.com",
            "booking@mishatravel.com",
        ]
        assert "Tour della Toscana" in notifier.sent[0].html_body

    async def test_accept_without_participants(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """An empty participant list is a valid acceptance."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.accept_offer(agency_principal, request["id"], [])

        assert result.success is True
        assert gateway.rows("quote_participants", request_id=request["id"]) == []
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert "0 partecipanti registrati (0 adulti, 0 bambini)" in timeline[0]["details"]

    async def test_accept_legacy_offered_status(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """``offered`` behaves exactly like ``offer_sent``."""
        request = seeder.request(agency, status="offered")
        seeder.offer(request)

        result = await service.accept_offer(
            agency_principal, request["id"], MARIA_AND_LUCA
        )

        assert result.success is True
        assert _status(gateway, request) == "accepted"

    @pytest.mark.parametrize(
        "status",
        ["sent", "in_review", "accepted", "declined", "payment_sent", "confirmed", "rejected"],
    )
    async def test_accept_from_wrong_status(
        self, service, gateway, seeder, agency, agency_principal, notifier, status
    ):
        """Only a pending offer can be accepted; nothing is written otherwise."""
        request = seeder.request(agency, status=status)
        seeder.offer(request)

        result = await service.accept_offer(
            agency_principal, request["id"], MARIA_AND_LUCA
        )

        assert result.success is False
        assert result.error_code == "invalid_state"
        assert _status(gateway, request) == status
        assert gateway.rows("quote_participants") == []
        assert gateway.rows("quote_timeline") == []
        assert notifier.sent == []

    async def test_second_accept_does_not_duplicate(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """Re-accepting fails and leaves the first participant set alone."""
        request = seeder.request(agency)
        seeder.offer(request)

        first = await service.accept_offer(agency_principal, request["id"], MARIA_AND_LUCA)
        second = await service.accept_offer(
            agency_principal, request["id"], [{"full_name": "Terzo Incomodo"}]
        )

        assert first.success is True
        assert second.success is False
        assert second.error_code in ("invalid_state", "conflict")
        names = {p["full_name"] for p in gateway.rows("quote_participants")}
        assert names == {"Maria Rossi", "Luca Rossi"}

    async def test_expired_offer(
        self, service, gateway, seeder, agency, agency_principal, notifier, today
    ):
        """An offer past its expiry cannot be accepted."""
        request = seeder.request(agency)
        seeder.offer(
            request, total_price=Decimal("1200"), offer_expiry=today - timedelta(days=1)
        )

        result = await service.accept_offer(
            agency_principal, request["id"], MARIA_AND_LUCA
        )

        assert result.success is False
        assert result.error_code == "offer_expired"
        assert result.error == "L'offerta è scaduta."
        assert _status(gateway, request) == "offer_sent"
        assert gateway.rows("quote_participants") == []
        assert notifier.sent == []

    async def test_offer_valid_through_expiry_day(
        self, service, seeder, agency, agency_principal, today
    ):
        """The expiry date itself is still a valid day."""
        request = seeder.request(agency)
        seeder.offer(request, offer_expiry=today)

        result = await service.accept_offer(agency_principal, request["id"], [])

        assert result.success is True

    async def test_latest_offer_decides(
        self, service, seeder, agency, agency_principal, today
    ):
        """Only the most recent offer counts for expiry."""
        request = seeder.request(agency)
        seeder.offer(request, offer_expiry=today + timedelta(days=30))
        seeder.offer(request, offer_expiry=today - timedelta(days=2))

        result = await service.accept_offer(agency_principal, request["id"], [])

        assert result.error_code == "offer_expired"

    async def test_missing_offer(self, service, gateway, seeder, agency, agency_principal):
        """A pending status without any offer row cannot be accepted."""
        request = seeder.request(agency)

        result = await service.accept_offer(agency_principal, request["id"], [])

        assert result.error_code == "invalid_state"
        assert _status(gateway, request) == "offer_sent"

    async def test_invalid_participant_rejects_batch(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """One blank name aborts the whole acceptance."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.accept_offer(
            agency_principal,
            request["id"],
            [{"full_name": "Maria Rossi"}, {"full_name": "  "}],
        )

        assert result.success is False
        assert result.error_code == "validation_error"
        assert result.error.startswith("Partecipante 2:")
        assert gateway.rows("quote_participants") == []
        assert _status(gateway, request) == "offer_sent"

    async def test_foreign_request(self, service, gateway, seeder, agency, agency_principal):
        """Another agency's request reads as not found and stays untouched."""
        other = seeder.agency(user_id="user-agency-2", business_name="Altro Tour")
        request = seeder.request(other)
        seeder.offer(request)

        result = await service.accept_offer(agency_principal, request["id"], MARIA_AND_LUCA)
        missing = await service.accept_offer(agency_principal, uuid4(), MARIA_AND_LUCA)

        assert result.success is False
        assert result.error_code == missing.error_code == "not_found"
        assert result.error == missing.error
        assert _status(gateway, request) == "offer_sent"

    async def test_unauthenticated(self, service, seeder, agency):
        """No principal, no transition."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.accept_offer(None, request["id"], [])

        assert result.error_code == "unauthenticated"

    async def test_concurrent_accepts(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """Exactly one of two simultaneous accepts wins."""
        request = seeder.request(agency)
        seeder.offer(request)
        two = MARIA_AND_LUCA
        three = [{"full_name": "A"}, {"full_name": "B"}, {"full_name": "C"}]

        results = await asyncio.gather(
            service.accept_offer(agency_principal, request["id"], two),
            service.accept_offer(agency_principal, request["id"], three),
        )

        winners = [i for i, r in enumerate(results) if r.success]
        losers = [r for r in results if not r.success]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].error_code in ("conflict", "invalid_state")

        expected = len(two) if winners[0] == 0 else len(three)
        assert len(gateway.rows("quote_participants")) == expected
        assert len(gateway.rows("quote_timeline")) == 1
        assert len(notifier.sent) == 2
        assert _status(gateway, request) == "accepted"

    async def test_lost_swap_removes_participants(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """When the status moves under us, our participant rows are removed."""
        request = seeder.request(agency)
        seeder.offer(request)

        def concurrent_decline(table, row_id):
            if table == "quote_requests":
                for row in gateway.tables["quote_requests"]:
                    if row["id"] == row_id:
                        row["status"] = "declined"

        gateway.before_update = concurrent_decline

        result = await service.accept_offer(agency_principal, request["id"], MARIA_AND_LUCA)

        assert result.success is False
        assert result.error_code == "conflict"
        assert gateway.rows("quote_participants") == []
        assert gateway.rows("quote_timeline") == []
        assert notifier.sent == []

    async def test_reoffer_between_read_and_swap(
        self, service, gateway, seeder, agency, agency_principal, notifier, today
    ):
        """A revoke and re-offer after our read makes the accept a conflict.

        The status is back to ``offer_sent`` by the time we swap, but the
        offer now on the request is one the agency has never seen.
        """
        request = seeder.request(agency)
        seeder.offer(request, total_price=Decimal("1200.00"))

        def revoke_and_reoffer(table, row_id):
            if table != "quote_requests":
                return
            gateway.before_update = None
            row = next(r for r in gateway.tables["quote_requests"] if r["id"] == row_id)
            row["status"] = "sent"
            row["updated_at"] = gateway.now()
            seeder.offer(
                request,
                total_price=Decimal("9999.00"),
                offer_expiry=today - timedelta(days=1),
            )
            row["status"] = "offer_sent"
            row["updated_at"] = gateway.now()

        gateway.before_update = revoke_and_reoffer

        result = await service.accept_offer(agency_principal, request["id"], MARIA_AND_LUCA)

        assert result.success is False
        assert result.error_code == "conflict"
        assert _status(gateway, request) == "offer_sent"
        assert gateway.rows("quote_participants") == []
        assert gateway.rows("quote_timeline") == []
        assert notifier.sent == []

    async def test_participant_age_is_stored(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """Age is kept and decides the child flag when none is given."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.accept_offer(
            agency_principal,
            request["id"],
            [{"full_name": "Maria Rossi", "age": 42}, {"full_name": "Luca Rossi", "age": 9}],
        )

        assert result.success is True
        participants = sorted(
            gateway.rows("quote_participants", request_id=request["id"]),
            key=lambda row: row["sort_order"],
        )
        assert [(p["age"], p["is_child"]) for p in participants] == [(42, False), (9, True)]
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert "(1 adulti, 1 bambini)" in timeline[0]["details"]

    async def test_timeline_failure_rolls_back(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """The audit entry is part of the transition; losing it undoes everything."""
        request = seeder.request(agency)
        seeder.offer(request)
        gateway.fail_inserts.add("quote_timeline")

        result = await service.accept_offer(agency_principal, request["id"], MARIA_AND_LUCA)

        assert result.success is False
        assert result.error_code == "store_error"
        assert result.error == "Errore imprevisto."
        assert _status(gateway, request) == "offer_sent"
        assert gateway.rows("quote_participants") == []
        assert notifier.sent == []

    async def test_notification_failure_keeps_success(
        self, make_service, failing_notifier, gateway, seeder, agency, agency_principal
    ):
        """Email failures end up in the outbox, never in the result."""
        service = make_service(failing_notifier)
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.accept_offer(agency_principal, request["id"], MARIA_AND_LUCA)

        assert result.success is True
        assert _status(gateway, request) == "accepted"
        outbox = gateway.rows("notification_outbox")
        assert len(outbox) == 2
        assert {row["status"] for row in outbox} == {"pending"}
        assert all("SMTP relay unavailable" in row["last_error"] for row in outbox)

    async def test_outbox_failure_keeps_success(
        self, make_service, failing_notifier, gateway, seeder, agency, agency_principal
    ):
        """Even an unwritable outbox does not fail the transition."""
        service = make_service(failing_notifier)
        request = seeder.request(agency)
        seeder.offer(request)
        gateway.fail_inserts.add("notification_outbox")

        result = await service.accept_offer(agency_principal, request["id"], [])

        assert result.success is True
        assert _status(gateway, request) == "accepted"

    async def test_agency_without_email(
        self, service, seeder, agency_principal, notifier
    ):
        """Without an agency address only the operators are told."""
        agency = seeder.agency(email=None)
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.accept_offer(agency_principal, request["id"], [])

        assert result.success is True
        assert notifier.subjects() == ["Offerta accettata da Viaggi Rossi"]


class TestDeclineOffer:
    """Agency refusal of the current offer."""

    async def test_decline_without_motivation(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """Declining needs no reason."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.decline_offer(agency_principal, request["id"])

        assert result.success is True
        assert _status(gateway, request) == "declined"
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["action"] == "Offerta rifiutata"
        assert timeline[0]["details"] == "L'agenzia ha rifiutato l'offerta."
        assert notifier.subjects() == ["Offerta rifiutata da Viaggi Rossi"]
        assert "Motivazione" not in notifier.sent[0].html_body

    async def test_decline_with_motivation(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """The motivation is kept verbatim and passed to the operators."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.decline_offer(
            agency_principal, request["id"], "Prezzo troppo alto"
        )

        assert result.success is True
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["details"] == (
            "L'agenzia ha rifiutato l'offerta. Motivazione: Prezzo troppo alto"
        )
        assert "Prezzo troppo alto" in notifier.sent[0].html_body

    async def test_motivation_whitespace_is_kept(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """Surrounding whitespace is part of what the agency wrote."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.decline_offer(
            agency_principal, request["id"], "  Prezzo troppo alto\n"
        )

        assert result.success is True
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["details"] == (
            "L'agenzia ha rifiutato l'offerta. Motivazione:   Prezzo troppo alto\n"
        )
        assert "  Prezzo troppo alto\n" in notifier.sent[0].html_body

    async def test_blank_motivation_is_absent(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """Whitespace-only motivation counts as none."""
        request = seeder.request(agency)
        seeder.offer(request)

        await service.decline_offer(agency_principal, request["id"], "   ")

        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["details"] == "L'agenzia ha rifiutato l'offerta."

    async def test_motivation_is_escaped_in_email(
        self, service, seeder, agency, agency_principal, notifier
    ):
        """Agency text never becomes markup."""
        request = seeder.request(agency)
        seeder.offer(request)

        await service.decline_offer(agency_principal, request["id"], "<b>caro</b>")

        assert "&lt;b&gt;caro&lt;/b&gt;" in notifier.sent[0].html_body

    async def test_decline_accepted_request(
        self, service, gateway, seeder, agency, agency_principal, notifier
    ):
        """Declining after acceptance is refused without side effects."""
        request = seeder.request(agency, status="accepted")
        seeder.offer(request)

        result = await service.decline_offer(
            agency_principal, request["id"], "Prezzo troppo alto"
        )

        assert result.success is False
        assert result.error_code == "invalid_state"
        assert _status(gateway, request) == "accepted"
        assert gateway.rows("quote_timeline") == []
        assert notifier.sent == []


class TestOperatorTransitions:
    """Admin-side transitions."""

    async def test_start_review(
        self, service, gateway, seeder, agency, operator_principal, notifier
    ):
        """A sent request moves into review without emails."""
        request = seeder.request(agency, status="sent")

        result = await service.start_review(operator_principal, request["id"])

        assert result.success is True
        assert _status(gateway, request) == "in_review"
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["action"] == 'Stato aggiornato a "in_review"'
        assert timeline[0]["actor"] == "admin"
        assert notifier.sent == []

    async def test_agency_cannot_operate(
        self, service, gateway, seeder, agency, agency_principal
    ):
        """Agency principals are refused on operator transitions."""
        request = seeder.request(agency, status="sent")

        result = await service.start_review(agency_principal, request["id"])

        assert result.success is False
        assert _status(gateway, request) == "sent"

    async def test_unknown_request(self, service, operator_principal):
        """Operators get not found for missing requests."""
        result = await service.start_review(operator_principal, uuid4())

        assert result.error_code == "not_found"

    async def test_make_offer(
        self, service, gateway, seeder, agency, operator_principal, notifier
    ):
        """A priced offer is stored and announced to the agency."""
        request = seeder.request(agency, status="in_review")
        offer = OfferCreate(
            total_price=Decimal("1200.00"),
            offer_expiry="2026-04-01",
            conditions="Minimo 2 partecipanti",
            package_details={"hotel": "4 stelle", "pasti": "mezza pensione"},
        )

        result = await service.make_offer(operator_principal, request["id"], offer)

        assert result.success is True
        assert _status(gateway, request) == "offer_sent"
        offers = gateway.rows("quote_offers", request_id=request["id"])
        assert len(offers) == 1
        assert offers[0]["total_price"] == Decimal("1200.00")
        assert offers[0]["package_details"] == {"hotel": "4 stelle", "pasti": "mezza pensione"}
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["details"] == "Prezzo totale: EUR 1200.00 - Scadenza: 2026-04-01"
        assert notifier.subjects() == ["Nuova offerta ricevuta - MishaTravel"]

    async def test_make_offer_on_request(
        self, service, gateway, seeder, agency, operator_principal
    ):
        """An offer can carry the on-request marker instead of a price."""
        request = seeder.request(agency, status="sent")

        result = await service.make_offer(
            operator_principal, request["id"], OfferCreate(price_on_request=True)
        )

        assert result.success is True
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["details"] == "Prezzo su richiesta"
        assert gateway.rows("quote_offers")[0]["total_price"] is None

    async def test_reoffer_after_decline(
        self, service, gateway, seeder, agency, operator_principal
    ):
        """A declined request can receive a new offer; old rows stay."""
        request = seeder.request(agency, status="declined")
        seeder.offer(request)

        result = await service.make_offer(
            operator_principal, request["id"], OfferCreate(total_price=Decimal("990"))
        )

        assert result.success is True
        assert _status(gateway, request) == "offer_sent"
        assert len(gateway.rows("quote_offers", request_id=request["id"])) == 2

    async def test_make_offer_from_accepted(
        self, service, gateway, seeder, agency, operator_principal
    ):
        """No new offer once the agency has accepted."""
        request = seeder.request(agency, status="accepted")

        result = await service.make_offer(
            operator_principal, request["id"], OfferCreate(total_price=Decimal("990"))
        )

        assert result.error_code == "invalid_state"
        assert gateway.rows("quote_offers") == []

    async def test_revoke_offer(
        self, service, gateway, seeder, agency, operator_principal, notifier
    ):
        """Revoking returns the request to sent and keeps the offer row."""
        request = seeder.request(agency)
        seeder.offer(request)

        result = await service.revoke_offer(operator_principal, request["id"])

        assert result.success is True
        assert _status(gateway, request) == "sent"
        assert len(gateway.rows("quote_offers", request_id=request["id"])) == 1
        assert notifier.subjects() == ["Offerta revocata - MishaTravel"]

    async def test_payment_and_confirmation(
        self, service, gateway, seeder, agency, operator_principal, notifier
    ):
        """Payment details create a pending payment that confirm settles."""
        request = seeder.request(agency, status="accepted")
        payment = PaymentDetailsCreate(
            bank_details="IT60X0542811101000000123456",
            amount=Decimal("1200.00"),
            reference="Preventivo Toscana",
        )

        sent = await service.send_payment_details(operator_principal, request["id"], payment)
        assert sent.success is True
        assert _status(gateway, request) == "payment_sent"
        assert gateway.rows("quote_payments")[0]["status"] == "pending"

        confirmed = await service.confirm(operator_principal, request["id"])
        assert confirmed.success is True
        assert _status(gateway, request) == "confirmed"
        assert gateway.rows("quote_payments")[0]["status"] == "confirmed"

        assert notifier.subjects() == [
            "Estremi di pagamento - MishaTravel",
            "Prenotazione confermata - MishaTravel",
        ]
        assert "IT60X0542811101000000123456" in notifier.sent[0].html_body

    async def test_confirm_requires_payment_sent(
        self, service, seeder, agency, operator_principal
    ):
        """Confirmation skips no steps."""
        request = seeder.request(agency, status="accepted")

        result = await service.confirm(operator_principal, request["id"])

        assert result.error_code == "invalid_state"

    async def test_reject_requires_motivation(
        self, service, gateway, seeder, agency, operator_principal
    ):
        """A blank motivation is a validation error."""
        request = seeder.request(agency, status="in_review")

        result = await service.reject(operator_principal, request["id"], "  ")

        assert result.error_code == "validation_error"
        assert _status(gateway, request) == "in_review"

    async def test_reject(self, service, gateway, seeder, agency, operator_principal, notifier):
        """Rejection records and emails the motivation."""
        request = seeder.request(agency, status="in_review")

        result = await service.reject(
            operator_principal, request["id"], "Partenza non disponibile"
        )

        assert result.success is True
        assert _status(gateway, request) == "rejected"
        timeline = gateway.rows("quote_timeline", request_id=request["id"])
        assert timeline[0]["details"] == "Partenza non disponibile"
        assert "Partenza non disponibile" in notifier.sent[0].html_body

    @pytest.mark.parametrize("status", ["confirmed", "rejected"])
    async def test_reject_terminal(self, service, seeder, agency, operator_principal, status):
        """Terminal requests cannot be rejected."""
        request = seeder.request(agency, status=status)

        result = await service.reject(operator_principal, request["id"], "Motivo")

        assert result.error_code == "invalid_state"


class TestFullLifecycle:
    """A request travelling from submission to confirmation."""

    async def test_happy_path(
        self, service, gateway, seeder, agency, agency_principal, operator_principal
    ):
        """Every step lands one timeline entry, readable newest first."""
        request = seeder.request(agency, status="sent")
        request_id = request["id"]

        steps = [
            await service.start_review(operator_principal, request_id),
            await service.make_offer(
                operator_principal, request_id, OfferCreate(total_price=Decimal("2400"))
            ),
            await service.accept_offer(agency_principal, request_id, MARIA_AND_LUCA),
            await service.send_payment_details(
                operator_principal,
                request_id,
                PaymentDetailsCreate(
                    bank_details="IT60X0542811101000000123456",
                    amount=Decimal("2400"),
                    reference="Rossi",
                ),
            ),
            await service.confirm(operator_principal, request_id),
        ]
        assert all(step.success for step in steps)

        detail = await service.get_agency_quote(agency_principal, request_id)
        assert isinstance(detail, Ok)
        quote = detail.value
        assert quote.request.status.value == "confirmed"
        assert [entry.action for entry in quote.timeline] == [
            "Pagamento confermato",
            "Estremi di pagamento inviati",
            "Offerta accettata con partecipanti",
            "Offerta inviata all'agenzia",
            'Stato aggiornato a "in_review"',
        ]
        assert [p.full_name for p in quote.participants] == ["Maria Rossi", "Luca Rossi"]
        assert quote.current_offer.total_price == Decimal("2400")


class TestReadOperations:
    """Guarded reads."""

    async def test_list_only_own_requests(
        self, service, seeder, agency, agency_principal
    ):
        """The listing is filtered by the caller's agency."""
        mine = seeder.request(agency)
        other = seeder.agency(user_id="user-agency-2", business_name="Altro Tour")
        seeder.request(other)

        result = await service.list_agency_quotes(agency_principal)

        assert isinstance(result, Ok)
        assert [q.id for q in result.value] == [mine["id"]]

    async def test_foreign_detail(self, service, seeder, agency, agency_principal):
        """Another agency's request cannot be read."""
        other = seeder.agency(user_id="user-agency-2", business_name="Altro Tour")
        request = seeder.request(other)

        result = await service.get_agency_quote(agency_principal, request["id"])

        assert isinstance(result, Err)
        assert result.error.user_message == "Richiesta non trovata o non autorizzata."

    async def test_operator_detail(
        self, service, seeder, agency, agency_principal, operator_principal
    ):
        """Operators read any request; agencies cannot use the operator view."""
        request = seeder.request(agency)
        seeder.offer(request)

        as_operator = await service.get_quote_detail(operator_principal, request["id"])
        as_agency = await service.get_quote_detail(agency_principal, request["id"])

        assert isinstance(as_operator, Ok)
        assert len(as_operator.value.offers) == 1
        assert isinstance(as_agency, Err)

    async def test_agency_offers(self, service, seeder, agency, agency_principal):
        """Offers on the caller's requests only, newest first, with request context."""
        first = seeder.request(agency, title="Tour della Toscana")
        older = seeder.offer(first)
        second = seeder.request(agency, status="accepted", title="Sicilia Barocca")
        newer = seeder.offer(second, total_price=Decimal("800.00"))
        other = seeder.agency(user_id="user-agency-2", business_name="Altro Tour")
        seeder.offer(seeder.request(other))

        result = await service.list_agency_offers(agency_principal)

        assert isinstance(result, Ok)
        offers = result.value
        assert [o.offer.id for o in offers] == [newer["id"], older["id"]]
        assert offers[0].request_status.value == "accepted"
        assert offers[0].request_type.value == "tour"
        assert offers[0].product_title == "Sicilia Barocca"
        assert offers[1].product_title == "Tour della Toscana"

    async def test_agency_offers_without_agency(self, service):
        """A user with no agency profile gets no listing."""
        stranger = Principal(user_id="user-without-agency", role=PrincipalRole.AGENCY)

        result = await service.list_agency_offers(stranger)

        assert isinstance(result, Err)
        assert result.error.public_code == "no_agency"


def _created(request, day):
    request["created_at"] = datetime.combine(day, time(12), tzinfo=timezone.utc)
    return request


class TestOperatorReads:
    """Cross-agency listing and per-status counts."""

    async def test_list_all_agencies(
        self, service, seeder, agency, operator_principal
    ):
        """Every agency's requests appear with agency and product names."""
        mine = seeder.request(agency)
        other = seeder.agency(
            user_id="user-agency-2", business_name="Altro Tour", email="info@altrotour.it"
        )
        theirs = seeder.request(other, status="sent", title="Crociera nei Fiordi")

        result = await service.list_quotes(operator_principal, QuoteFilters())

        assert isinstance(result, Ok)
        items = result.value
        assert [item.request.id for item in items] == [theirs["id"], mine["id"]]
        assert items[0].agency_business_name == "Altro Tour"
        assert items[0].agency_email == "info@altrotour.it"
        assert items[0].product_title == "Crociera nei Fiordi"
        assert items[1].agency_business_name == "Viaggi Rossi"

    async def test_filters(self, service, seeder, agency, operator_principal):
        """Status, agency and type filters narrow the list."""
        offered = seeder.request(agency, status="offer_sent")
        legacy = seeder.request(agency, status="offered")
        seeder.request(agency, status="sent")
        other = seeder.agency(user_id="user-agency-2", business_name="Altro Tour")
        foreign = seeder.request(other, status="offer_sent")

        by_status = await service.list_quotes(
            operator_principal, QuoteFilters(status=QuoteStatus.OFFER_SENT)
        )
        by_agency = await service.list_quotes(
            operator_principal,
            QuoteFilters(status=QuoteStatus.OFFER_SENT, agency_id=agency["id"]),
        )
        by_type = await service.list_quotes(
            operator_principal, QuoteFilters(request_type=RequestType.CRUISE)
        )

        assert {i.request.id for i in by_status.value} == {
            offered["id"],
            legacy["id"],
            foreign["id"],
        }
        assert {i.request.id for i in by_agency.value} == {offered["id"], legacy["id"]}
        assert by_type.value == []

    async def test_date_range_includes_both_days(
        self, service, seeder, agency, operator_principal
    ):
        """``date_to`` covers its whole day."""
        _created(seeder.request(agency), date(2026, 2, 28))
        march_1 = _created(seeder.request(agency), date(2026, 3, 1))
        march_5 = _created(seeder.request(agency), date(2026, 3, 5))
        _created(seeder.request(agency), date(2026, 3, 6))

        result = await service.list_quotes(
            operator_principal,
            QuoteFilters(date_from=date(2026, 3, 1), date_to=date(2026, 3, 5)),
        )

        assert [i.request.id for i in result.value] == [march_5["id"], march_1["id"]]

    async def test_inverted_date_range_is_empty(
        self, service, seeder, agency, operator_principal
    ):
        _created(seeder.request(agency), date(2026, 3, 3))

        result = await service.list_quotes(
            operator_principal,
            QuoteFilters(date_from=date(2026, 3, 5), date_to=date(2026, 3, 1)),
        )

        assert isinstance(result, Ok)
        assert result.value == []

    async def test_agency_cannot_list_everything(
        self, service, seeder, agency, agency_principal
    ):
        seeder.request(agency)

        listed = await service.list_quotes(agency_principal, QuoteFilters())
        stats = await service.quote_stats(agency_principal)

        assert isinstance(listed, Err)
        assert isinstance(stats, Err)
        assert listed.error.http_status == 404

    async def test_stats(self, service, seeder, agency, operator_principal):
        """Counts per status; ``offered`` is counted as ``offer_sent``."""
        for status in ("sent", "sent", "offer_sent", "offered", "accepted", "rejected"):
            seeder.request(agency, status=status)

        result = await service.quote_stats(operator_principal)

        assert isinstance(result, Ok)
        stats = result.value
        assert stats.total == 6
        assert stats.sent == 2
        assert stats.offer_sent == 2
        assert stats.accepted == 1
        assert stats.rejected == 1
        assert stats.in_review == 0
        assert stats.confirmed == 0

    async def test_stats_on_empty_store(self, service, operator_principal):
        result = await service.quote_stats(operator_principal)

        assert result.value.total == 0
