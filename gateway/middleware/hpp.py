"""
API Gateway — HTTP Parameter Pollution Middleware
===================================================

What:  Collapses repeated query parameters to a single value.
Why:   `?role=user&role=admin` reaches handlers as a list where they expect a
       string; different layers picking different entries is an exploit path.
How:   Rewrites the ASGI query string so each key appears once with its LAST
       value. Keys on the whitelist keep every value. The dropped values are
       kept in request.state.query_polluted for handlers that want them.

Ordering note:
    This runs before the Body Stage parses request bodies, so only the query
    string is affected.
"""

from typing import Dict, Iterable, List, Tuple
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Receive, Scope, Send


def collapse_query(
    query_string: str, whitelist: Iterable[str] = (), encoding: str = "utf-8"
) -> Tuple[List[Tuple[str, str]], Dict[str, List[str]]]:
    """
    Returns (clean pairs, polluted values).

    Clean pairs keep the order in which each key first appeared. `encoding`
    is the charset percent-escapes are decoded with; the middleware passes
    latin-1 so every byte survives the rewrite unchanged.

    >>> collapse_query("a=1&b=2&a=3")
    ([('a', '3'), ('b', '2')], {'a': ['1', '3']})
    """
    allowed = set(whitelist)
    grouped: Dict[str, List[str]] = {}
    for key, value in parse_qsl(query_string, keep_blank_values=True, encoding=encoding):
        grouped.setdefault(key, []).append(value)

    clean: List[Tuple[str, str]] = []
    polluted: Dict[str, List[str]] = {}
    for key, values in grouped.items():
        if key in allowed or len(values) == 1:
            clean.extend((key, value) for value in values)
        else:
            clean.append((key, values[-1]))
            polluted[key] = values
    return clean, polluted


def _as_text(value: str) -> str:
    # latin-1 text back to the UTF-8 string handlers expect
    return value.encode("latin-1").decode("utf-8", errors="replace")


class ParameterPollutionMiddleware:
    """Pure ASGI middleware; leaves requests without duplicate keys untouched."""

    def __init__(self, app: ASGIApp, whitelist: Iterable[str] = ()) -> None:
        self.app = app
        self.whitelist = frozenset(whitelist)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("query_string"):
            query = scope["query_string"].decode("latin-1")
            clean, polluted = collapse_query(query, self.whitelist, encoding="latin-1")
            state = scope.setdefault("state", {})
            state["query_polluted"] = {
                _as_text(key): [_as_text(value) for value in values]
                for key, values in polluted.items()
            }
            if polluted:
                scope["query_string"] = urlencode(clean, encoding="latin-1").encode("latin-1")

        await self.app(scope, receive, send)
