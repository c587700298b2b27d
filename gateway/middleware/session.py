"""
API Gateway — Session Cookie Middleware
=========================================

What:  Client-side session stored in a single cookie.
Why:   Downstream services hand the gateway a token once; the gateway keeps it
       in the cookie so the browser presents it on every later call.
How:   The session dict is serialized to JSON and signed with itsdangerous when
       signing keys are configured. It is exposed as `request.session`.

Key rotation:
    Keys are ordered. The first key signs new cookies; every key is accepted
    when verifying, so a new key can be prepended without logging anyone out.
    With no keys at all the cookie is plain base64-encoded JSON.

Cookie attributes: Path=/, Max-Age=7 days, HttpOnly, SameSite=lax, and Secure
outside development.
"""

import json
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import itsdangerous
from itsdangerous.exc import BadData
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.config import GatewaySettings

SESSION_COOKIE_NAME = "session"
SESSION_MAX_AGE = 7 * 24 * 60 * 60  # 7 days, in seconds


@dataclass(frozen=True)
class SessionCookieConfig:
    name: str
    keys: Tuple[str, ...]
    max_age: int
    secure: bool

    @property
    def signed(self) -> bool:
        return bool(self.keys)

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "SessionCookieConfig":
        return cls(
            name=SESSION_COOKIE_NAME,
            keys=settings.session_keys_list,
            max_age=SESSION_MAX_AGE,
            secure=not settings.is_development,
        )


class _SessionCodec:
    """Turns the session dict into a cookie value and back."""

    def __init__(self, config: SessionCookieConfig) -> None:
        self.config = config
        self._serializer = None
        if config.signed:
            # itsdangerous signs with the LAST key and verifies with all of them
            self._serializer = itsdangerous.URLSafeTimedSerializer(
                list(reversed(config.keys)), salt="gateway.session"
            )

    def dumps(self, session: Dict[str, Any]) -> str:
        if self._serializer is not None:
            return self._serializer.dumps(session)
        return urlsafe_b64encode(json.dumps(session).encode("utf-8")).decode("ascii")

    def loads(self, value: str) -> Dict[str, Any]:
        """Raises BadData (or ValueError for unsigned cookies) on bad input."""
        if self._serializer is not None:
            data = self._serializer.loads(value, max_age=self.config.max_age)
        else:
            data = json.loads(urlsafe_b64decode(value.encode("ascii")))
        if not isinstance(data, dict):
            raise ValueError("session cookie does not hold an object")
        return data


class SessionCookieMiddleware:
    """
    Pure ASGI middleware modelled on Starlette's SessionMiddleware.

    Unreadable cookies (tampered, expired, signed with an unknown key) are
    treated as an empty session rather than an error.
    """

    def __init__(self, app: ASGIApp, config: SessionCookieConfig) -> None:
        self.app = app
        self.config = config
        self.codec = _SessionCodec(config)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        initial_session_was_empty = True
        scope["session"] = {}

        raw = connection.cookies.get(self.config.name)
        if raw:
            try:
                scope["session"] = self.codec.loads(raw)
                initial_session_was_empty = False
            except (BadData, ValueError):
                scope["session"] = {}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                if scope["session"]:
                    value = self.codec.dumps(scope["session"])
                    headers.append("Set-Cookie", self._cookie(value, self.config.max_age))
                elif not initial_session_was_empty:
                    headers.append("Set-Cookie", self._cookie("null", 0))
            await send(message)

        await self.app(scope, receive, send_wrapper)

    def _cookie(self, value: str, max_age: int) -> str:
        parts = [
            f"{self.config.name}={value}",
            "path=/",
            f"Max-Age={max_age}",
            "httponly",
            "samesite=lax",
        ]
        if self.config.secure:
            parts.append("secure")
        return "; ".join(parts)
