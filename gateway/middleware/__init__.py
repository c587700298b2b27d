"""
API Gateway — Middleware Package
==================================

What:  Cross-cutting layers every request passes through.

Middleware Chain (outermost first, order matters!):
    Request → [Request ID] → [Access Log]
            → [Trust Proxy] → [Session] → [HPP] → [Security Headers] → [CORS]
            → [Fault Boundary]
            → [GZip] → [Body Parser] → Route Handler

    Why this order:
    1. Request ID first: every log line, including error reports, can be correlated
    2. Trust Proxy first in the Security Stage: later layers see the real client
    3. Security layers outside the Fault Boundary: error responses get the
       same headers and CORS treatment as successful ones
    4. Body Parser innermost: oversized bodies are rejected before routes run,
       and the Fault Boundary reports the rejection

The chain is assembled by gateway.server.GatewayServer.
"""
