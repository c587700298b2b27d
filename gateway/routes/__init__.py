"""
API Gateway — Route Registration
==================================

What:  The default route registrar handed to GatewayServer.
Why:   The gateway core never imports route modules itself; it calls one
       registrar function, exactly once, after the Security and Body stages
       and before the Error Stage.

Route Inventory:
    - health.py:  GET /gateway-health   (load balancer liveness probe)

Downstream service proxies register their routers here as well.
"""

from fastapi import FastAPI

from gateway.routes import health


def app_routes(app: FastAPI) -> None:
    app.include_router(health.router)
