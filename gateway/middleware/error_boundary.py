"""
API Gateway — Fault Boundary Middleware
=========================================

What:  Catches every exception escaping the Body Stage and the routes.
Why:   Without it, an error raised outside the router, or one nobody classified,
       would surface as the ASGI server's bare "Internal Server Error".
How:   Wraps the inner app; on an exception it asks the shared ErrorReporter
       for the response. It sits directly inside the Security Stage, so its
       responses still get security headers, CORS and session handling.

If the response has already started, nothing more can be sent: the fault is
logged and re-raised so the server closes the connection.
"""

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.error_handlers import ErrorReporter


class FaultBoundaryMiddleware:
    def __init__(self, app: ASGIApp, reporter: ErrorReporter) -> None:
        self.app = app
        self.reporter = reporter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if response_started:
                self.reporter.logger.error(
                    "Error raised after the response started: %s", exc, exc_info=True
                )
                raise
            response = self.reporter.respond_to_exception(exc)
            await response(scope, receive, send)
