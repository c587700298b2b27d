"""
API Gateway — Access Logging Middleware
=========================================

What:  One structured log line per proxied request.
Why:   The gateway is the single place every client call passes through, so it
       is where request volume, latency and error rates are observed.
How:   Times the downstream call and logs method, path, status, duration,
       request ID and client address, picking the level from the status class.

What we log vs what we DON'T log (privacy):
    Log: method, path, status, duration, client IP, request ID
    Don't log: request bodies, cookies, authorization headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from gateway.middleware.request_id import request_id_var

logger = logging.getLogger("gateway.access")

# Load balancer probes hit this every few seconds
QUIET_PATHS = {"/gateway-health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Level by status:
        5xx → ERROR, 4xx → WARNING, everything else → INFO

    The client address is read after the downstream call returns, so it
    reflects the trust-proxy rewrite done further down the chain.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
