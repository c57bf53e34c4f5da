"""Result[T, E] to HTTP response mapping for lifecycle endpoints.

Error bodies always have the ``ActionResult`` shape; only the status code
varies with the error kind.
"""

from typing import Any, TypeVar

from beartype import beartype
from fastapi import Response

from ..core.errors import HTTP_STATUS_BY_KIND, LifecycleError, QuoteErrorKind
from ..core.result_types import Err, Ok
from ..schemas.quote import ActionResult

T = TypeVar("T")


class APIResponseHandler:
    """Maps lifecycle outcomes onto HTTP semantics."""

    @staticmethod
    @beartype
    def status_for(result: ActionResult, success_status: int = 200) -> int:
        """HTTP status code for an ``ActionResult``."""
        if result.success:
            return success_status
        try:
            return HTTP_STATUS_BY_KIND[QuoteErrorKind(result.error_code)]
        except ValueError:
            return 500

    @staticmethod
    @beartype
    def from_action(
        result: ActionResult, response: Response, success_status: int = 200
    ) -> ActionResult:
        """Set the status code and pass the uniform body through."""
        response.status_code = APIResponseHandler.status_for(result, success_status)
        return result

    @staticmethod
    def from_result(
        result: Ok[Any] | Err[LifecycleError],
        response: Response,
        success_status: int = 200,
    ) -> Any:
        """Unwrap a read result or turn its error into an ``ActionResult``."""
        if isinstance(result, Err):
            response.status_code = result.error.http_status
            return ActionResult.from_error(result.error)
        response.status_code = success_status
        return result.value


@beartype
def handle_action(
    result: ActionResult, response: Response, success_status: int = 200
) -> ActionResult:
    """Convenience function for mutation endpoints."""
    return APIResponseHandler.from_action(result, response, success_status)


def handle_result(
    result: Ok[Any] | Err[LifecycleError],
    response: Response,
    success_status: int = 200,
) -> Any:
    """Convenience function for read endpoints."""
    return APIResponseHandler.from_result(result, response, success_status)
