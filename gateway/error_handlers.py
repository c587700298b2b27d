"""
API Gateway — Error Stage
===========================

What:  The terminal not-found handler and the global error normalization.
Why:   A single place guarantees every failing request gets exactly one JSON
       error in a consistent shape, with no internal detail leaked.
How:   - A catch-all route appended after every other route answers 404
       - Exception handlers turn framework and structured errors into responses
       - ErrorReporter is shared with the fault boundary middleware, so errors
         raised outside the router are reported the same way

Outcome handling:
    StructuredError   → log tagged with its component, send its status and body
    UnclassifiedFault → log full traceback, send a generic 500
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.exceptions import (
    GATEWAY_COMPONENT,
    ErrorOutcome,
    StructuredError,
    UnclassifiedFault,
    classify,
)
from gateway.middleware.request_id import request_id_var

NOT_FOUND_MESSAGE = "The endpoint called does not exist."

# Catch-all: every method, every path
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class ErrorReporter:
    """Logs an ErrorOutcome once and builds the client response for it."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def respond(self, outcome: ErrorOutcome) -> JSONResponse:
        rid = request_id_var.get("")
        if isinstance(outcome, UnclassifiedFault):
            # Full detail stays server-side
            self.logger.error(
                "%s unclassified error: %s",
                GATEWAY_COMPONENT,
                outcome.detail,
                exc_info=(type(outcome.error), outcome.error, outcome.error.__traceback__),
                extra={"component": GATEWAY_COMPONENT, "request_id": rid},
            )
        else:
            self.logger.error(
                "%s %s: %s",
                GATEWAY_COMPONENT,
                outcome.coming_from,
                outcome.message,
                extra={
                    "component": outcome.coming_from,
                    "request_id": rid,
                    "error": outcome.serialize_errors(),
                    "context": outcome.context,
                },
            )
        return JSONResponse(
            status_code=outcome.status_code,
            content=outcome.serialize_errors(),
            headers=outcome.headers,
        )

    def respond_to_exception(self, error: BaseException) -> JSONResponse:
        return self.respond(classify(error))


def register_not_found_handler(app: FastAPI, logger: logging.Logger) -> None:
    """
    Append the catch-all route.

    Must run after every other route is registered: Starlette matches routes
    in order, so anything added later would be shadowed.
    """

    async def endpoint_not_found(request: Request, full_path: str) -> JSONResponse:
        logger.error(
            "%s endpoint does not exist.",
            str(request.url),
            extra={"component": GATEWAY_COMPONENT, "request_id": request_id_var.get("")},
        )
        return JSONResponse(status_code=404, content={"message": NOT_FOUND_MESSAGE})

    app.add_api_route(
        "/{full_path:path}",
        endpoint_not_found,
        methods=ALL_METHODS,
        include_in_schema=False,
    )


def register_exception_handlers(app: FastAPI, reporter: ErrorReporter) -> None:
    """
    Handlers run inside the app's exception middleware, so their responses
    still pass back through the security, CORS and session layers.

    Unclassified exceptions are deliberately NOT registered here: they propagate
    to FaultBoundaryMiddleware, which answers with the generic 500.
    """

    async def handle_structured_error(request: Request, exc: StructuredError) -> JSONResponse:
        return reporter.respond(exc)

    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return reporter.respond_to_exception(exc)

    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return reporter.respond_to_exception(exc)

    app.add_exception_handler(StructuredError, handle_structured_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
