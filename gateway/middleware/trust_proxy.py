"""
API Gateway — Trust Proxy Middleware
======================================

What:  Resolves the real client address and scheme behind reverse proxies.
Why:   The gateway runs behind a load balancer. Without this, every request
       appears to come from the balancer and always over plain http, which
       breaks secure cookies, logging and per-client decisions.
How:   Trusts forwarded headers from exactly `hops` upstream proxies.

Address resolution (hops=1):
    Peer (socket) address is the proxy we trust. The client is the last entry
    of X-Forwarded-For, i.e. what that proxy saw. Entries further left were
    written by parties we do not trust and are ignored.

        X-Forwarded-For: spoofed, 203.0.113.7      peer: 10.0.0.2
        → client = 203.0.113.7

    The scheme comes from the first value of X-Forwarded-Proto.
"""

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

TRUSTED_PROXY_HOPS = 1


class TrustProxyMiddleware:
    """Pure ASGI middleware: rewrites scope["client"] and scope["scheme"] in place."""

    def __init__(self, app: ASGIApp, hops: int = TRUSTED_PROXY_HOPS) -> None:
        self.app = app
        self.hops = hops

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] in ("http", "websocket") and self.hops > 0:
            headers = Headers(scope=scope)

            forwarded_for = [
                part.strip()
                for part in headers.get("x-forwarded-for", "").split(",")
                if part.strip()
            ]
            if forwarded_for:
                scope["client"] = (self._client_host(scope, forwarded_for), 0)

            forwarded_proto = headers.get("x-forwarded-proto", "").split(",")[0].strip().lower()
            if forwarded_proto in ("http", "https"):
                if scope["type"] == "websocket":
                    scope["scheme"] = "wss" if forwarded_proto == "https" else "ws"
                else:
                    scope["scheme"] = forwarded_proto

        await self.app(scope, receive, send)

    def _client_host(self, scope: Scope, forwarded_for: list) -> str:
        # Nearest first: socket peer, then X-Forwarded-For right to left
        peer = scope.get("client")
        chain = [peer[0] if peer else ""] + list(reversed(forwarded_for))
        return chain[min(self.hops, len(chain) - 1)]
