"""
API Gateway — Request ID Middleware
=====================================

What:  Assigns a correlation ID to each request and echoes it on the response.
Why:   Lets gateway log lines be matched with the downstream service logs
       for the same client call.
How:   Reuses an incoming X-Request-ID or generates a short one, stores it in a
       ContextVar for loggers and in request.state for route handlers.
When:  Outermost gateway middleware, so even error responses carry the header.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID when present (end-to-end tracing)
        2. Otherwise generate an 8-character ID
        3. Expose it via request_id_var and request.state.request_id
        4. Return it in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
