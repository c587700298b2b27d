"""
API Gateway — Origin-Scoped CORS Middleware
=============================================

What:  Starlette's CORSMiddleware, except that credentials are only granted
       to configured origins.
Why:   With allow_credentials=True Starlette adds
       Access-Control-Allow-Credentials to every response that carries an
       Origin header, allowed or not. A rejected origin must get neither that
       header nor Access-Control-Allow-Origin.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import Message, Send

ALLOW_CREDENTIALS = "Access-Control-Allow-Credentials"


class OriginScopedCORSMiddleware(CORSMiddleware):

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        allowed = self.is_allowed_origin(origin=request_headers["origin"])
        if not allowed and ALLOW_CREDENTIALS in response.headers:
            del response.headers[ALLOW_CREDENTIALS]
        return response

    async def send(self, message: Message, send: Send, request_headers: Headers) -> None:
        if message["type"] != "http.response.start" or self.is_allowed_origin(
            origin=request_headers["origin"]
        ):
            await super().send(message, send, request_headers)
            return

        async def strip_credentials(message: Message) -> None:
            headers = MutableHeaders(scope=message)
            if ALLOW_CREDENTIALS in headers:
                del headers[ALLOW_CREDENTIALS]
            await send(message)

        await super().send(message, strip_credentials, request_headers)
