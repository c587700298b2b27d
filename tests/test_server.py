"""
API Gateway — Pipeline Assembly & Lifecycle Tests
===================================================

What:  Stage ordering, route registration, the startup probe and the uvicorn
       lifecycle wrapper.
How:   Inspects the assembled app and drives the lifespan directly; uvicorn's
       serve() is patched so no socket is ever opened.

What we test:
    ✅ Middleware order matches the documented request flow
    ✅ Registrar is called exactly once, before the catch-all route
    ✅ Two gateways built side by side behave identically and share nothing
    ✅ Startup probe runs in the background and never blocks startup
    ✅ Server start/bind failures are logged and reported, not raised
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from starlette.middleware.gzip import GZipMiddleware

from gateway.main import build_gateway
from gateway.middleware.body_parser import BodyParserMiddleware
from gateway.middleware.cors import OriginScopedCORSMiddleware
from gateway.middleware.error_boundary import FaultBoundaryMiddleware
from gateway.middleware.hpp import ParameterPollutionMiddleware
from gateway.middleware.logging import RequestLoggingMiddleware
from gateway.middleware.request_id import RequestIDMiddleware
from gateway.middleware.security_headers import SecurityHeadersMiddleware
from gateway.middleware.session import SessionCookieMiddleware
from gateway.middleware.trust_proxy import TrustProxyMiddleware
from gateway.server import GatewayHttpServer, GatewayServer
from tests.conftest import client_for, register_test_routes


@pytest.fixture
def gateway(settings, gateway_logger, search_client) -> GatewayServer:
    return build_gateway(
        settings,
        logger=gateway_logger,
        register_routes=register_test_routes,
        search_client=search_client,
    )


class TestAssembly:

    def test_middleware_order(self, gateway):
        gateway.assemble()
        assert gateway.middleware_order == [
            RequestIDMiddleware,
            RequestLoggingMiddleware,
            TrustProxyMiddleware,
            SessionCookieMiddleware,
            ParameterPollutionMiddleware,
            SecurityHeadersMiddleware,
            OriginScopedCORSMiddleware,
            FaultBoundaryMiddleware,
            GZipMiddleware,
            BodyParserMiddleware,
        ]

    def test_registrar_called_once_with_app(self, settings, gateway_logger, search_client):
        registrar = MagicMock()
        server = build_gateway(settings, gateway_logger, registrar, search_client)
        app = server.assemble()
        registrar.assert_called_once_with(app)

    def test_catch_all_is_the_last_route(self, gateway):
        app = gateway.assemble()
        assert app.routes[-1].path == "/{full_path:path}"

    def test_assemble_twice_is_refused(self, gateway):
        gateway.assemble()
        with pytest.raises(RuntimeError, match="already assembled"):
            gateway.assemble()

    @pytest.mark.asyncio
    async def test_independent_gateways_behave_identically(self, make_app):
        first, second = make_app(), make_app()
        assert first is not second

        for path in ["/unknown", "/api/v1/forbidden", "/api/v1/crash", "/gateway-health"]:
            async with client_for(first) as one, client_for(second) as two:
                a, b = await one.get(path), await two.get(path)
            assert a.status_code == b.status_code
            if path != "/gateway-health":
                assert a.json() == b.json()

    @pytest.mark.asyncio
    async def test_session_state_does_not_leak_between_gateways(self, make_app):
        first, second = make_app(), make_app(session_keys="other-key")
        async with client_for(first) as one, client_for(second) as two:
            login = await one.get("/api/v1/session/login")
            cookie = login.headers["set-cookie"].split(";")[0]
            response = await two.get("/api/v1/session/me", headers={"cookie": cookie})
        assert response.json() == {"jwt": None}


class TestDependencyGate:

    @pytest.mark.asyncio
    async def test_probe_runs_once_on_startup(self, gateway, search_client):
        app = gateway.assemble()
        async with app.router.lifespan_context(app):
            await asyncio.sleep(0)
        search_client.check_connection.assert_awaited_once()
        search_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_slow_probe_does_not_block_startup(self, gateway, search_client):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_probe():
            started.set()
            await release.wait()

        search_client.check_connection = AsyncMock(side_effect=slow_probe)
        app = gateway.assemble()

        async with app.router.lifespan_context(app):
            # Startup finished while the probe is still pending
            await asyncio.wait_for(started.wait(), timeout=1)
            assert not release.is_set()

        # Shutdown cancels the pending probe and closes the client
        search_client.close.assert_awaited_once()


class TestServerLifecycle:

    @pytest.mark.asyncio
    async def test_logs_pid_and_port(self, gateway, caplog):
        caplog.set_level(logging.INFO)

        async def fake_serve(self, sockets=None):
            self.started = True
            self._on_listening()

        with patch.object(GatewayHttpServer, "serve", fake_serve):
            assert await gateway.start() is True

        messages = [r.getMessage() for r in caplog.records if r.name == "apiGatewayServer.test"]
        assert any(m.startswith("Gateway server has started with process id") for m in messages)
        assert "Gateway server running on port 4000" in messages

    @pytest.mark.asyncio
    async def test_bind_failure_is_logged_not_raised(self, gateway, caplog):
        caplog.set_level(logging.ERROR)

        async def failing_serve(self, sockets=None):
            raise SystemExit(1)

        with patch.object(GatewayHttpServer, "serve", failing_serve):
            assert await gateway.start() is False

        errors = [r for r in caplog.records if getattr(r, "component", None) == "GatewayService startServer"]
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_stop_before_listening_is_logged(self, gateway, caplog):
        caplog.set_level(logging.ERROR)

        async def aborted_serve(self, sockets=None):
            # uvicorn returns without raising when lifespan startup fails
            self.started = False

        with patch.object(GatewayHttpServer, "serve", aborted_serve):
            assert await gateway.start() is False

        errors = [r for r in caplog.records if getattr(r, "component", None) == "GatewayService startServer"]
        assert len(errors) == 1
        assert "stopped before listening" in errors[0].getMessage()

    @pytest.mark.asyncio
    async def test_construction_failure_is_logged_not_raised(self, gateway, caplog):
        caplog.set_level(logging.ERROR)

        with patch("gateway.server.uvicorn.Config", side_effect=ValueError("bad config")):
            assert await gateway.start() is False

        errors = [r for r in caplog.records if getattr(r, "component", None) == "GatewayService startServer"]
        assert len(errors) == 1
        assert "bad config" in errors[0].getMessage()

    @pytest.mark.asyncio
    async def test_start_assembles_before_serving(self, gateway):
        async def fake_serve(self, sockets=None):
            self.started = True

        with patch.object(GatewayHttpServer, "serve", fake_serve):
            await gateway.start()

        assert isinstance(gateway.app, FastAPI)
        assert FaultBoundaryMiddleware in gateway.middleware_order


class TestRequestCorrelation:

    @pytest.mark.asyncio
    async def test_incoming_request_id_is_echoed(self, client):
        response = await client.get("/gateway-health", headers={"x-request-id": "abc123"})
        assert response.headers["x-request-id"] == "abc123"

    @pytest.mark.asyncio
    async def test_request_id_is_generated(self, client):
        response = await client.get("/api/v1/crash")
        assert response.status_code == 500
        assert len(response.headers["x-request-id"]) == 8

    @pytest.mark.asyncio
    async def test_access_log_level_follows_status(self, client, caplog):
        caplog.set_level(logging.INFO, logger="gateway.access")
        await client.get("/api/v1/echo", headers={"x-request-id": "ok-1"})
        await client.get("/unknown", headers={"x-request-id": "miss-1"})
        await client.get("/api/v1/crash", headers={"x-request-id": "crash-1"})

        levels = {
            r.request_id: r.levelno for r in caplog.records if r.name == "gateway.access"
        }
        assert levels == {"ok-1": logging.INFO, "miss-1": logging.WARNING, "crash-1": logging.ERROR}

    @pytest.mark.asyncio
    async def test_health_checks_are_not_access_logged(self, client, caplog):
        caplog.set_level(logging.INFO, logger="gateway.access")
        await client.get("/gateway-health")
        assert not [r for r in caplog.records if r.name == "gateway.access"]
