"""Quote request state machine: legal transitions and per-status guidance."""

from attrs import frozen
from beartype import beartype

from ..core.errors import LifecycleError, invalid_state
from ..core.result_types import Err, Ok, Result
from ..models.quote import QuoteStatus, TimelineActor

OFFER_PENDING_STATUSES = frozenset({QuoteStatus.OFFER_SENT, QuoteStatus.OFFERED})
TERMINAL_STATUSES = frozenset({QuoteStatus.CONFIRMED, QuoteStatus.REJECTED})


@frozen
class Transition:
    """One row of the transition table."""

    operation: str
    allowed_from: frozenset[QuoteStatus]
    target: QuoteStatus
    actor: TimelineActor


TRANSITIONS: dict[str, Transition] = {
    t.operation: t
    for t in (
        Transition(
            "start_review",
            frozenset({QuoteStatus.SENT}),
            QuoteStatus.IN_REVIEW,
            TimelineActor.ADMIN,
        ),
        # Re-offer after decline is operator-initiated.
        Transition(
            "make_offer",
            frozenset({QuoteStatus.SENT, QuoteStatus.IN_REVIEW, QuoteStatus.DECLINED}),
            QuoteStatus.OFFER_SENT,
            TimelineActor.ADMIN,
        ),
        Transition(
            "accept_offer",
            OFFER_PENDING_STATUSES,
            QuoteStatus.ACCEPTED,
            TimelineActor.AGENCY,
        ),
        Transition(
            "decline_offer",
            OFFER_PENDING_STATUSES,
            QuoteStatus.DECLINED,
            TimelineActor.AGENCY,
        ),
        Transition(
            "revoke_offer",
            OFFER_PENDING_STATUSES,
            QuoteStatus.SENT,
            TimelineActor.ADMIN,
        ),
        Transition(
            "send_payment_details",
            frozenset({QuoteStatus.ACCEPTED}),
            QuoteStatus.PAYMENT_SENT,
            TimelineActor.ADMIN,
        ),
        Transition(
            "confirm",
            frozenset({QuoteStatus.PAYMENT_SENT}),
            QuoteStatus.CONFIRMED,
            TimelineActor.ADMIN,
        ),
        Transition(
            "reject",
            frozenset(QuoteStatus) - TERMINAL_STATUSES,
            QuoteStatus.REJECTED,
            TimelineActor.ADMIN,
        ),
    )
}


@beartype
def check_transition(
    operation: str, current: QuoteStatus
) -> Result[Transition, LifecycleError]:
    """Look up ``operation`` and verify it is legal from ``current``."""
    transition = TRANSITIONS[operation]
    if current not in transition.allowed_from:
        return Err(invalid_state(current.value, operation))
    return Ok(transition)


@beartype
def is_terminal_status(status: QuoteStatus | str) -> bool:
    """Confirmed and rejected requests accept no further transitions."""
    try:
        return QuoteStatus(status) in TERMINAL_STATUSES
    except ValueError:
        return False


@frozen
class StatusGuidance:
    """Who has to act next, worded for each side."""

    admin_message: str
    admin_action_required: bool
    agency_message: str
    agency_action_required: bool


_AWAITING_OFFER = StatusGuidance(
    "Azione richiesta: valuta la richiesta e prepara un'offerta",
    True,
    "In attesa di revisione da parte dell'operatore",
    False,
)
_AWAITING_AGENCY = StatusGuidance(
    "In attesa di risposta dall'agenzia",
    False,
    "Azione richiesta: valuta l'offerta ricevuta e rispondi",
    True,
)

_GUIDANCE: dict[QuoteStatus, StatusGuidance] = {
    QuoteStatus.SENT: _AWAITING_OFFER,
    QuoteStatus.IN_REVIEW: StatusGuidance(
        "Azione richiesta: completa la revisione e invia un'offerta",
        True,
        "L'operatore sta valutando la tua richiesta",
        False,
    ),
    QuoteStatus.OFFER_SENT: _AWAITING_AGENCY,
    QuoteStatus.OFFERED: _AWAITING_AGENCY,
    QuoteStatus.ACCEPTED: StatusGuidance(
        "Azione richiesta: invia il contratto e i dati bancari",
        True,
        "In attesa dell'invio del contratto da parte dell'operatore",
        False,
    ),
    QuoteStatus.PAYMENT_SENT: StatusGuidance(
        "Azione richiesta: verifica e conferma il pagamento ricevuto",
        True,
        "In attesa della conferma del pagamento da parte dell'operatore",
        False,
    ),
    QuoteStatus.CONFIRMED: StatusGuidance(
        "Prenotazione confermata", False, "Prenotazione confermata", False
    ),
    QuoteStatus.DECLINED: StatusGuidance(
        "L'agenzia ha rifiutato l'offerta", False, "Hai rifiutato l'offerta", False
    ),
    QuoteStatus.REJECTED: StatusGuidance(
        "Richiesta rifiutata dall'operatore",
        False,
        "L'operatore ha rifiutato la richiesta",
        False,
    ),
}


@beartype
def status_guidance(status: QuoteStatus | str) -> StatusGuidance:
    """Guidance for a status; unknown values echo the raw status."""
    try:
        return _GUIDANCE[QuoteStatus(status)]
    except ValueError:
        return StatusGuidance(str(status), False, str(status), False)
