"""
API Gateway — Pipeline Assembly & Server Lifecycle
====================================================

What:  Builds the gateway's request pipeline on a FastAPI app and serves it.
Why:   The order of cross-cutting stages is the gateway's main guarantee;
       keeping the whole assembly in one class makes that order explicit.
How:   GatewayServer.assemble() registers the stages in a fixed order;
       GatewayServer.start() assembles and then runs uvicorn on port 4000.

Registration order:
    Security Stage → Body Stage → Route Stage → Dependency Gate → Error Stage

Request flow (outermost first):
    RequestID → AccessLog
      → TrustProxy → Session → HPP → SecurityHeaders → CORS        (Security)
      → FaultBoundary                                               (Error)
      → GZip → BodyParser                                           (Body)
      → ExceptionMiddleware → Router [routes..., catch-all 404]     (Route, Error)

Middleware is appended to app.user_middleware, which Starlette treats as
outermost-first, so registration order is request order. The fault boundary is
inserted right after the Security Stage: it observes every stage that can fail,
and its responses still pass through the security layers.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Sequence, Tuple

import uvicorn
from fastapi import FastAPI
from starlette.middleware import Middleware
from starlette.middleware.gzip import GZipMiddleware

from gateway.config import GatewaySettings
from gateway.error_handlers import (
    ErrorReporter,
    register_exception_handlers,
    register_not_found_handler,
)
from gateway.middleware.body_parser import MAX_BODY_BYTES, BodyParserMiddleware
from gateway.middleware.cors import OriginScopedCORSMiddleware
from gateway.middleware.error_boundary import FaultBoundaryMiddleware
from gateway.middleware.hpp import ParameterPollutionMiddleware
from gateway.middleware.logging import RequestLoggingMiddleware
from gateway.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from gateway.middleware.security_headers import SecurityHeadersMiddleware
from gateway.middleware.session import SessionCookieConfig, SessionCookieMiddleware
from gateway.middleware.trust_proxy import TRUSTED_PROXY_HOPS, TrustProxyMiddleware
from gateway.search import SearchHealthClient

RouteRegistrar = Callable[[FastAPI], None]

CORS_METHODS: Tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "OPTIONS")

# Responses smaller than this are sent uncompressed
GZIP_MINIMUM_SIZE = 1024


@dataclass(frozen=True)
class CorsPolicy:
    allow_origins: Tuple[str, ...]
    allow_credentials: bool = True
    allow_methods: Tuple[str, ...] = CORS_METHODS

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "CorsPolicy":
        return cls(allow_origins=tuple(settings.client_origins_list))


class GatewayHttpServer(uvicorn.Server):
    """uvicorn server that reports once its listening sockets are bound."""

    def __init__(self, config: uvicorn.Config, on_listening: Callable[[], None]) -> None:
        super().__init__(config)
        self._on_listening = on_listening

    async def startup(self, sockets: Optional[list] = None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self._on_listening()


class GatewayServer:
    """
    Assembles and serves the gateway.

    Everything comes in through the constructor: there is no module-level
    settings or logger, so two GatewayServers never share mutable state.

    Args:
        app:             FastAPI instance to configure
        settings:        Frozen gateway settings
        logger:          Logger for the gateway core
        register_routes: Called once with `app` to attach downstream routes
        search_client:   Probed once at startup (Dependency Gate)
    """

    def __init__(
        self,
        app: FastAPI,
        settings: GatewaySettings,
        logger: logging.Logger,
        register_routes: RouteRegistrar,
        search_client: SearchHealthClient,
    ) -> None:
        self.app = app
        self.settings = settings
        self.logger = logger
        self.register_routes = register_routes
        self.search_client = search_client
        self.reporter = ErrorReporter(logger)
        self._assembled = False
        self._error_boundary_index = 0

    # ══════════════════════════════════════════════════════════════════════
    # Entry points
    # ══════════════════════════════════════════════════════════════════════

    def assemble(self) -> FastAPI:
        """Register every stage on the app, in order. Safe to call once."""
        if self._assembled:
            raise RuntimeError("Gateway pipeline is already assembled")
        self._request_observability()
        self._security_middleware()
        self._standard_middleware()
        self._routes_middleware()
        self._start_search_probe()
        self._error_handler()
        self._assembled = True
        return self.app

    async def start(self) -> bool:
        """Assemble the pipeline and serve until shutdown. False if the server failed."""
        if not self._assembled:
            self.assemble()
        return await self._start_server()

    # ══════════════════════════════════════════════════════════════════════
    # Stages
    # ══════════════════════════════════════════════════════════════════════

    def _use(self, middleware_class: type, **options) -> None:
        self.app.user_middleware.append(Middleware(middleware_class, **options))

    def _request_observability(self) -> None:
        self._use(RequestIDMiddleware)
        self._use(RequestLoggingMiddleware)

    def _security_middleware(self) -> None:
        cors = CorsPolicy.from_settings(self.settings)
        self._use(TrustProxyMiddleware, hops=TRUSTED_PROXY_HOPS)
        self._use(SessionCookieMiddleware, config=SessionCookieConfig.from_settings(self.settings))
        self._use(ParameterPollutionMiddleware)
        self._use(SecurityHeadersMiddleware)
        self._use(
            OriginScopedCORSMiddleware,
            allow_origins=list(cors.allow_origins),
            allow_credentials=cors.allow_credentials,
            allow_methods=list(cors.allow_methods),
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )
        self._error_boundary_index = len(self.app.user_middleware)

    def _standard_middleware(self) -> None:
        self._use(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)
        self._use(BodyParserMiddleware, limit=MAX_BODY_BYTES)

    def _routes_middleware(self) -> None:
        self.register_routes(self.app)

    def _start_search_probe(self) -> None:
        # Runs when the server starts, as a background task (see _lifespan)
        self.app.router.lifespan_context = self._lifespan

    def _error_handler(self) -> None:
        register_not_found_handler(self.app, self.logger)
        register_exception_handlers(self.app, self.reporter)
        self.app.user_middleware.insert(
            self._error_boundary_index,
            Middleware(FaultBoundaryMiddleware, reporter=self.reporter),
        )

    # ══════════════════════════════════════════════════════════════════════
    # Dependency Gate
    # ══════════════════════════════════════════════════════════════════════

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        """
        Fire-and-forget probe: the task is started and startup continues
        immediately, so the listener binds whatever the probe's outcome.
        """
        probe = asyncio.create_task(
            self.search_client.check_connection(), name="elasticsearch-probe"
        )
        try:
            yield
        finally:
            if not probe.done():
                probe.cancel()
                with suppress(asyncio.CancelledError):
                    await probe
            await self.search_client.close()

    # ══════════════════════════════════════════════════════════════════════
    # Server Lifecycle
    # ══════════════════════════════════════════════════════════════════════

    async def _start_server(self) -> bool:
        try:
            config = uvicorn.Config(
                self.app,
                host=self.settings.server_host,
                port=self.settings.server_port,
                log_config=None,  # logging is configured by gateway.main
                server_header=False,
                proxy_headers=False,  # TrustProxyMiddleware owns forwarded headers
                lifespan="on",
            )
            http_server = GatewayHttpServer(config, on_listening=self._log_listening)
        except Exception as error:
            self.logger.error(
                "GatewayService startServer() error method: %s",
                error,
                exc_info=True,
                extra={"component": "GatewayService startServer"},
            )
            return False
        return await self._start_http_server(http_server)

    async def _start_http_server(self, http_server: uvicorn.Server) -> bool:
        try:
            self.logger.info("Gateway server has started with process id %d", os.getpid())
            await http_server.serve()
        except (Exception, SystemExit) as error:
            # uvicorn reports a failed bind with sys.exit(1)
            self.logger.error(
                "GatewayService startServer() error method: %r",
                error,
                extra={"component": "GatewayService startServer"},
            )
            return False
        if not http_server.started:
            # Lifespan startup failed; uvicorn logged the cause and returned
            self.logger.error(
                "GatewayService startServer() error method: server stopped before listening",
                extra={"component": "GatewayService startServer"},
            )
            return False
        return True

    def _log_listening(self) -> None:
        self.logger.info("Gateway server running on port %d", self.settings.server_port)

    @property
    def middleware_order(self) -> Sequence[type]:
        """Middleware classes, outermost first."""
        return [middleware.cls for middleware in self.app.user_middleware]
