"""
API Gateway — Application Package Initializer
===============================================

What: Marks the `gateway` directory as a Python package.
Why:  Enables module imports like `from gateway.config import GatewaySettings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The gateway is a thin front door in front of downstream services:

    ┌─────────────────────────────────────┐
    │   Security Stage (proxy, cookies,   │  ← Cross-cutting protections
    │   HPP, headers, CORS)               │
    ├─────────────────────────────────────┤
    │   Body Stage (gzip, bounded body)   │  ← Payload handling
    ├─────────────────────────────────────┤
    │   Route Stage (external registrar)  │  ← Downstream delegation
    ├─────────────────────────────────────┤
    │   Error Stage (404 + normalization) │  ← One JSON error shape
    └─────────────────────────────────────┘

    The assembly lives in `gateway.server.GatewayServer`; everything it needs
    (settings, logger, route registrar, search client) is passed in.
"""

__version__ = "1.0.0"
