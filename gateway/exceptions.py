"""
API Gateway — Structured Error Hierarchy
==========================================

What:  Defines the errors the gateway and its route modules raise, and the
       closed outcome type the Error Stage renders.
Why:   Every failing request must produce exactly one JSON error in one shape.
       Structured errors carry their own status code, originating component and
       serialization; anything else is an unclassified fault and becomes a
       generic 500.
How:   Each exception class carries a message, status code and component label.
       classify() turns any exception into either a StructuredError or an
       UnclassifiedFault; the Error Stage renders only those two cases.
Who:   Raised by middleware and route handlers; rendered by gateway.error_handlers.

Exception Hierarchy:
    StructuredError (base)
    ├── BadRequestError              → 400 Bad Request
    ├── NotAuthorizedError           → 401 Unauthorized
    ├── NotFoundError                → 404 Not Found
    ├── FileTooLargeError            → 413 Payload Too Large
    ├── RequestValidationFailedError → 422 Unprocessable Entity
    ├── ServerError                  → 503 Service Unavailable
    └── HttpStatusError              → status taken from a framework HTTP error

Design Decision:
    Errors still travel as exceptions (they propagate naturally through the
    ASGI call stack), but the Error Stage never inspects arbitrary exception
    types when building a response: it receives an ErrorOutcome, which is
    either a StructuredError or an UnclassifiedFault.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.schemas import ErrorResponse

GATEWAY_COMPONENT = "GatewayService"

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."


class StructuredError(Exception):
    """
    Base exception for every error the gateway knows how to report.

    Attributes:
        message:     Client-safe error description
        status_code: HTTP status code sent to the client
        coming_from: Label of the component that raised the error
        context:     Additional debug info (logged but NOT returned to client)
        headers:     Extra response headers, e.g. WWW-Authenticate on a 401
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        coming_from: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.coming_from = coming_from
        if status_code is not None:
            self.status_code = status_code
        if not 100 <= self.status_code <= 599:
            raise ValueError(f"status_code must be within 100-599, got {self.status_code}")
        self.context = context or {}
        self.headers = dict(headers) if headers else None
        super().__init__(self.message)

    def serialize_errors(self) -> Dict[str, Any]:
        """
        JSON body sent to the client.

        Subclasses may return a different shape; the Error Stage sends whatever
        this method returns, unchanged.
        """
        return ErrorResponse(
            message=self.message,
            status_code=self.status_code,
            coming_from=self.coming_from,
        ).model_dump(by_alias=True)


class BadRequestError(StructuredError):
    """Client sent something the gateway cannot process as-is."""

    status_code = 400


class NotAuthorizedError(StructuredError):
    """Missing or invalid credentials."""

    status_code = 401


class NotFoundError(StructuredError):
    """A downstream resource does not exist."""

    status_code = 404


class FileTooLargeError(StructuredError):
    """
    Raised when a request body exceeds the configured size bound.

    HTTP:    413 Payload Too Large
    When:    Declared Content-Length or streamed bytes cross the Body Stage limit.
    """

    status_code = 413


class RequestValidationFailedError(StructuredError):
    """Request parameters did not match what a route declared."""

    status_code = 422


class ServerError(StructuredError):
    """
    A downstream service failed or is unavailable.

    HTTP:    503 Service Unavailable
    Why 503: The gateway itself is fine; the client may retry later.
    """

    status_code = 503


class HttpStatusError(StructuredError):
    """
    Framework HTTP error (e.g. raised by Starlette) carried in the gateway shape.

    The exception's response headers travel with it, so challenges such as
    WWW-Authenticate from FastAPI security dependencies reach the client.
    """


@dataclass(frozen=True)
class UnclassifiedFault:
    """
    Any failure that is not a StructuredError.

    The client only ever sees the generic 500 body; `detail` and the original
    exception are for the server-side log.
    """

    detail: str
    error: BaseException = field(repr=False)
    status_code: int = 500
    headers: Optional[Dict[str, str]] = None

    def serialize_errors(self) -> Dict[str, Any]:
        return ErrorResponse(
            message=GENERIC_ERROR_MESSAGE,
            status_code=self.status_code,
            coming_from=GATEWAY_COMPONENT,
        ).model_dump(by_alias=True)


ErrorOutcome = Union[StructuredError, UnclassifiedFault]


def classify(error: BaseException) -> ErrorOutcome:
    """
    Decide how a failure is reported.

    Framework errors that already describe a client-facing HTTP status are
    converted into structured errors; everything unknown becomes an
    UnclassifiedFault.
    """
    if isinstance(error, StructuredError):
        return error
    if isinstance(error, RequestValidationError):
        return RequestValidationFailedError(
            message="Request validation failed",
            coming_from=f"{GATEWAY_COMPONENT} requestValidation",
            context={"errors": error.errors()},
        )
    if isinstance(error, StarletteHTTPException):
        return HttpStatusError(
            message=str(error.detail),
            coming_from=f"{GATEWAY_COMPONENT} http",
            status_code=error.status_code,
            headers=error.headers,
        )
    return UnclassifiedFault(detail=f"{type(error).__name__}: {error}", error=error)
