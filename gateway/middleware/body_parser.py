"""
API Gateway — Bounded Body Parser Middleware
==============================================

What:  Bounds every request body before any route runs, and parses JSON and
       URL-encoded bodies.
Why:   An unbounded body is a memory exhaustion vector. Rejecting oversized
       payloads here means route handlers never see them.
How:   1. Declared Content-Length above the limit → reject without reading
       2. Otherwise read the stream, rejecting as soon as the total crosses it
       3. JSON / URL-encoded bytes are parsed into request.state.body
          (an empty body of either kind parses to {})
       4. Replay the raw bytes to the route so FastAPI can parse them again

Failures raise structured errors (413 / 400); the Error Stage reports them.

Other content types (multipart uploads, binary streams) are bounded the same
way but not parsed.
"""

import json
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from gateway.exceptions import BadRequestError, FileTooLargeError

MAX_BODY_BYTES = 200 * 1024 * 1024  # 200 MB

COMPONENT = "GatewayService bodyParser"

JSON = "json"
URLENCODED = "urlencoded"


def body_kind(content_type: str) -> Optional[str]:
    """Which parser applies to a Content-Type header, if any."""
    media_type = content_type.split(";")[0].strip().lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        return JSON
    if media_type == "application/x-www-form-urlencoded":
        return URLENCODED
    return None


def parse_json(body: bytes) -> Any:
    """
    Strict JSON: the top level must be an object or an array.
    An empty body parses to {}.
    """
    if not body.strip():
        return {}
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BadRequestError(
            message="Request body is not valid JSON",
            coming_from=COMPONENT,
            context={"reason": str(exc)},
        ) from exc
    if not isinstance(data, (dict, list)):
        raise BadRequestError(
            message="Request body must be a JSON object or array",
            coming_from=COMPONENT,
        )
    return data


def parse_urlencoded(body: bytes) -> Dict[str, Union[str, List[str]]]:
    """Repeated keys become lists; single keys stay plain strings."""
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise BadRequestError(
            message="Request body is not valid UTF-8",
            coming_from=COMPONENT,
        ) from exc

    parsed: Dict[str, Union[str, List[str]]] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        existing = parsed.get(key)
        if existing is None:
            parsed[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            parsed[key] = [existing, value]
    return parsed


class BodyParserMiddleware:
    """Pure ASGI middleware. One instance is shared by every request."""

    def __init__(self, app: ASGIApp, limit: int = MAX_BODY_BYTES) -> None:
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        kind = body_kind(headers.get("content-type", ""))
        if not self._has_body(headers):
            if kind is not None:
                scope.setdefault("state", {})["body"] = {}
            await self.app(scope, receive, send)
            return

        declared = headers.get("content-length")
        if declared is not None and declared.strip().isdigit() and int(declared) > self.limit:
            raise self._too_large(int(declared))

        body = await self._read_bounded(receive)
        if body is None:
            # Client went away mid-upload; nobody is left to answer
            return

        if kind is not None:
            state = scope.setdefault("state", {})
            state["body"] = parse_json(body) if kind == JSON else parse_urlencoded(body)

        await self.app(scope, self._replay(body, receive), send)

    @staticmethod
    def _has_body(headers: Headers) -> bool:
        if "transfer-encoding" in headers:
            return True
        declared = headers.get("content-length")
        return declared is not None and declared.strip() not in ("", "0")

    async def _read_bounded(self, receive: Receive) -> Optional[bytes]:
        chunks: List[bytes] = []
        received = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return None
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                raise self._too_large(received)
            chunks.append(chunk)
            if not message.get("more_body", False):
                return b"".join(chunks)

    @staticmethod
    def _replay(body: bytes, receive: Receive) -> Receive:
        delivered = False

        async def replay() -> Message:
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        return replay

    def _too_large(self, size: int) -> FileTooLargeError:
        return FileTooLargeError(
            message="Request entity too large",
            coming_from=COMPONENT,
            context={"size": size, "limit": self.limit},
        )
