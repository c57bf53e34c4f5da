"""Authorization guard for quote lifecycle operations."""

from uuid import UUID

from attrs import frozen
from beartype import beartype

from ..core.errors import LifecycleError, QuoteErrorKind, not_found, unauthenticated
from ..core.logging_utils import get_logger
from ..core.result_types import Err, Ok, Result
from ..models.agency import Agency
from ..models.quote import QuoteRequest
from ..schemas.auth import Principal, PrincipalRole
from .store import PrivilegedStore, ScopedStore, TableGateway

logger = get_logger(__name__)

OPERATOR_ROLES = frozenset({PrincipalRole.ADMIN, PrincipalRole.SUPER_ADMIN})
QUOTES_SCOPE = "quotes"


@frozen
class AuthorizedRequest:
    """A quote request together with the agency that owns it."""

    agency: Agency
    request: QuoteRequest
    scoped: ScopedStore


class AuthorizationGuard:
    """Resolves principals to agencies and checks ownership.

    Nothing is cached: every operation calls the guard again right before it
    mutates, so a change of ownership between two calls is always seen.
    """

    def __init__(self, gateway: TableGateway) -> None:
        """Initialize guard over the shared gateway."""
        self._gateway = gateway
        self._privileged = PrivilegedStore(gateway)

    @beartype
    async def resolve_agency(
        self, principal: Principal | None
    ) -> Result[tuple[Agency, ScopedStore], LifecycleError]:
        """Resolve the principal to exactly one agency."""
        if principal is None:
            return Err(unauthenticated())

        scoped = ScopedStore(self._gateway, principal.user_id)
        rows = await scoped.get_own_agencies()
        if not rows:
            logger.warning("No agency for user %s", principal.user_id)
            return Err(
                LifecycleError(
                    QuoteErrorKind.NO_AGENCY,
                    f"no agency for user {principal.user_id}",
                )
            )
        if len(rows) > 1:
            # Ambiguous ownership mapping: fail closed.
            logger.warning(
                "User %s maps to %d agencies", principal.user_id, len(rows)
            )
            return Err(
                LifecycleError(
                    QuoteErrorKind.FORBIDDEN,
                    f"user {principal.user_id} maps to {len(rows)} agencies",
                )
            )

        agency = Agency.from_row(rows[0])
        return Ok((agency, scoped.bind_agency(agency.id)))

    @beartype
    async def authorize(
        self, principal: Principal | None, request_id: UUID
    ) -> Result[AuthorizedRequest, LifecycleError]:
        """Confirm the principal's agency owns the request."""
        resolved = await self.resolve_agency(principal)
        if isinstance(resolved, Err):
            return resolved
        agency, scoped = resolved.value

        row = await self._privileged.get_request(request_id)
        if row is None:
            return Err(not_found(request_id))

        request = QuoteRequest.from_row(row)
        if request.agency_id != agency.id:
            logger.warning(
                "Agency %s attempted access to request %s", agency.id, request_id
            )
            return Err(
                LifecycleError(
                    QuoteErrorKind.FORBIDDEN,
                    f"agency {agency.id} does not own request {request_id}",
                )
            )

        return Ok(AuthorizedRequest(agency=agency, request=request, scoped=scoped))

    @beartype
    def require_operator(
        self, principal: Principal | None
    ) -> Result[Principal, LifecycleError]:
        """Admin-facing operations need an admin role or the quotes scope."""
        if principal is None:
            return Err(unauthenticated())
        if principal.role in OPERATOR_ROLES:
            return Ok(principal)
        if principal.role is PrincipalRole.OPERATOR and QUOTES_SCOPE in principal.scopes:
            return Ok(principal)
        logger.warning("User %s lacks operator rights", principal.user_id)
        return Err(
            LifecycleError(
                QuoteErrorKind.FORBIDDEN,
                f"user {principal.user_id} is not an operator",
            )
        )
