"""
API Gateway — Application Factory & Entry Point
=================================================

What:  Builds the gateway app and runs it.
Why:   Keeps process concerns (environment, logging setup, exit code) out of
       the pipeline assembly in gateway.server.
How:   create_app() returns an assembled FastAPI instance (also usable with
       `uvicorn --factory gateway.main:create_app`); main() builds a
       GatewayServer and serves it on port 4000.

Lifecycle:
    1. Load settings from the environment (fail fast on invalid values)
    2. Configure logging
    3. Assemble the pipeline (Security → Body → Routes → Dependency Gate → Errors)
    4. Serve; the search probe runs in the background once the server starts
"""

import asyncio
import logging
import sys
from typing import Optional

from fastapi import FastAPI

from gateway import __version__
from gateway.config import GatewaySettings, load_settings
from gateway.routes import app_routes
from gateway.search import ElasticSearchClient, SearchHealthClient
from gateway.server import GatewayServer, RouteRegistrar

GATEWAY_LOGGER_NAME = "apiGatewayServer"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure process-wide logging.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once by main(), before anything logs.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # The gateway writes its own access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("elastic_transport").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_gateway(
    settings: GatewaySettings,
    logger: Optional[logging.Logger] = None,
    register_routes: RouteRegistrar = app_routes,
    search_client: Optional[SearchHealthClient] = None,
) -> GatewayServer:
    """Create an unassembled GatewayServer with its own FastAPI instance."""
    logger = logger or logging.getLogger(GATEWAY_LOGGER_NAME)
    docs_url = "/docs" if settings.is_development else None
    app = FastAPI(
        title="API Gateway",
        description="Front door for the downstream services.",
        version=__version__,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_url else None,
    )
    return GatewayServer(
        app=app,
        settings=settings,
        logger=logger,
        register_routes=register_routes,
        search_client=search_client or ElasticSearchClient.from_settings(settings, logger),
    )


def create_app(
    settings: Optional[GatewaySettings] = None,
    logger: Optional[logging.Logger] = None,
    register_routes: RouteRegistrar = app_routes,
    search_client: Optional[SearchHealthClient] = None,
) -> FastAPI:
    """
    Factory returning a fully assembled gateway app.

    Each call builds an independent app; nothing is shared between them.
    """
    settings = settings or load_settings()
    return build_gateway(settings, logger, register_routes, search_client).assemble()


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    gateway = build_gateway(settings)
    if not asyncio.run(gateway.start()):
        sys.exit(1)


if __name__ == "__main__":
    main()
