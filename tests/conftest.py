"""
API Gateway — Test Configuration (conftest.py)
================================================

What:  Shared pytest fixtures for the gateway test suite.
Why:   Every test builds its own gateway from explicit settings, a fake search
       client and its own route registrar; nothing leaks between tests.
How:   httpx AsyncClient over ASGITransport talks to the app in-process.

Fixture Hierarchy:
    ├── settings:       Frozen GatewaySettings for a production-like env
    ├── gateway_logger: Dedicated logger captured by caplog
    ├── search_client:  AsyncMock standing in for ElasticSearchClient
    ├── make_app:       Factory building an assembled app for a registrar
    └── client:         AsyncClient bound to an app with the test routes
"""

import logging
import os
from typing import Callable
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from gateway.config import GatewaySettings
from gateway.exceptions import NotAuthorizedError, StructuredError
from gateway.main import create_app
from gateway.routes import app_routes

# Settings built from the environment in these tests should stay quiet
os.environ.setdefault("LOG_LEVEL", "WARNING")

CLIENT_ORIGIN = "http://localhost:3000"


class ForbiddenError(StructuredError):
    """Route-defined error with its own body shape."""

    status_code = 403

    def serialize_errors(self):
        return {"message": self.message}


def register_test_routes(app: FastAPI) -> None:
    """Stands in for the downstream route modules."""
    app_routes(app)

    @app.get("/api/v1/echo")
    async def echo(request: Request):
        return {
            "query": dict(request.query_params),
            "query_string": request.url.query,
            "roles": request.query_params.getlist("role"),
            "client": request.client.host if request.client else None,
            "scheme": request.url.scheme,
            "polluted": getattr(request.state, "query_polluted", {}),
        }

    @app.post("/api/v1/echo")
    async def echo_body(request: Request):
        return {"body": getattr(request.state, "body", None), "raw": (await request.body()).decode()}

    @app.get("/api/v1/forbidden")
    async def forbidden():
        raise ForbiddenError(message="forbidden", coming_from="AuthService currentUser")

    @app.get("/api/v1/unauthorized")
    async def unauthorized():
        raise NotAuthorizedError(message="Token is not available", coming_from="GatewayService authMiddleware")

    @app.get("/api/v1/crash")
    async def crash():
        raise RuntimeError("database password is hunter2")

    @app.get("/api/v1/session/login")
    async def login(request: Request):
        request.session["jwt"] = "token-123"
        return {"ok": True}

    @app.get("/api/v1/session/me")
    async def me(request: Request):
        return {"jwt": request.session.get("jwt")}

    @app.get("/api/v1/session/logout")
    async def logout(request: Request):
        request.session.clear()
        return {"ok": True}

    @app.get("/api/v1/items/{item_id}")
    async def item(item_id: int):
        return {"item_id": item_id}


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(
        node_env="production",
        client_url=CLIENT_ORIGIN,
        elastic_search_url="http://elasticsearch:9200",
        session_keys="first-key,second-key",
        _env_file=None,
    )


@pytest.fixture
def gateway_logger() -> logging.Logger:
    logger = logging.getLogger("apiGatewayServer.test")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def search_client() -> AsyncMock:
    client = AsyncMock()
    client.check_connection = AsyncMock(return_value=None)
    client.close = AsyncMock(return_value=None)
    return client


@pytest.fixture
def make_app(settings, gateway_logger, search_client) -> Callable[..., FastAPI]:
    def _make(register_routes=register_test_routes, **overrides) -> FastAPI:
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        return create_app(
            settings=app_settings,
            logger=gateway_logger,
            register_routes=register_routes,
            search_client=search_client,
        )

    return _make


def client_for(app: FastAPI) -> AsyncClient:
    # raise_app_exceptions=False: assert on the response the client would get
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://gateway.test")


@pytest_asyncio.fixture
async def client(make_app):
    async with client_for(make_app()) as http_client:
        yield http_client
