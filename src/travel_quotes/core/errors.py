"""Error taxonomy for quote lifecycle operations.

Lifecycle operations never raise across their public boundary; they carry a
``LifecycleError`` inside an ``Err`` and the caller turns it into a uniform
``ActionResult``. ``NotifyError`` is the one exception type in this module and
it is always caught by the notification dispatcher.
"""

from enum import Enum

from attrs import field, frozen
from beartype import beartype


class QuoteErrorKind(str, Enum):
    """Kinds of failure a lifecycle operation can report."""

    UNAUTHENTICATED = "unauthenticated"
    NO_AGENCY = "no_agency"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    OFFER_EXPIRED = "offer_expired"
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    STORE = "store_error"


# FORBIDDEN and NOT_FOUND share one text so foreign ids read like missing ones.
_USER_MESSAGES: dict[QuoteErrorKind, str] = {
    QuoteErrorKind.UNAUTHENTICATED: "Non autenticato.",
    QuoteErrorKind.NO_AGENCY: "Nessuna agenzia associata.",
    QuoteErrorKind.FORBIDDEN: "Richiesta non trovata o non autorizzata.",
    QuoteErrorKind.NOT_FOUND: "Richiesta non trovata o non autorizzata.",
    QuoteErrorKind.INVALID_STATE: "Lo stato della richiesta non permette questa azione.",
    QuoteErrorKind.OFFER_EXPIRED: "L'offerta è scaduta.",
    QuoteErrorKind.CONFLICT: "La richiesta è stata modificata da un'altra operazione. Ricarica la pagina.",
    QuoteErrorKind.STORE: "Errore imprevisto.",
}

HTTP_STATUS_BY_KIND: dict[QuoteErrorKind, int] = {
    QuoteErrorKind.UNAUTHENTICATED: 401,
    QuoteErrorKind.NO_AGENCY: 403,
    QuoteErrorKind.FORBIDDEN: 404,
    QuoteErrorKind.NOT_FOUND: 404,
    QuoteErrorKind.INVALID_STATE: 409,
    QuoteErrorKind.OFFER_EXPIRED: 409,
    QuoteErrorKind.VALIDATION: 422,
    QuoteErrorKind.CONFLICT: 409,
    QuoteErrorKind.STORE: 500,
}


@frozen
class LifecycleError:
    """Failure of a lifecycle operation.

    ``message`` is the internal description used in logs; ``user_message`` is
    what leaves the service. Validation errors keep their own text because it
    names the offending participant (1-based) and field.
    """

    kind: QuoteErrorKind = field()
    message: str = field()
    index: int | None = field(default=None)
    field_name: str | None = field(default=None)

    @property
    @beartype
    def user_message(self) -> str:
        """Short, non-leaking message for the caller."""
        if self.kind is QuoteErrorKind.VALIDATION:
            return self.message
        return _USER_MESSAGES[self.kind]

    @property
    @beartype
    def public_code(self) -> str:
        """Error code exposed to callers; ownership failures read as not found."""
        if self.kind is QuoteErrorKind.FORBIDDEN:
            return QuoteErrorKind.NOT_FOUND.value
        return self.kind.value

    @property
    @beartype
    def http_status(self) -> int:
        """HTTP status code for this error kind."""
        return HTTP_STATUS_BY_KIND[self.kind]


@beartype
def unauthenticated() -> LifecycleError:
    """No valid principal."""
    return LifecycleError(QuoteErrorKind.UNAUTHENTICATED, "no authenticated principal")


@beartype
def not_found(request_id: object) -> LifecycleError:
    """Quote request does not exist."""
    return LifecycleError(QuoteErrorKind.NOT_FOUND, f"quote request {request_id} not found")


@beartype
def invalid_state(current: str, operation: str) -> LifecycleError:
    """Transition not legal from the current status."""
    return LifecycleError(
        QuoteErrorKind.INVALID_STATE,
        f"{operation} not allowed from status '{current}'",
    )


@beartype
def conflict(request_id: object, expected: str) -> LifecycleError:
    """Compare-and-swap lost: status moved away from ``expected``."""
    return LifecycleError(
        QuoteErrorKind.CONFLICT,
        f"quote request {request_id} is no longer '{expected}'",
    )


@beartype
def store_error(detail: str) -> LifecycleError:
    """Underlying persistence failure."""
    return LifecycleError(QuoteErrorKind.STORE, detail)


class NotifyError(Exception):
    """Delivery of a notification failed. Never surfaced to callers."""
