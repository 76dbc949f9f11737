"""
SnipVault Backend — Request ID Middleware
===========================================

What:  Assigns every request a correlation ID and echoes it in X-Request-ID.
Why:   Error bodies, access logs and service logs all carry the same ID, so a
       client report can be matched to the server log lines of that request.
How:   Reuses a well-formed client-supplied X-Request-ID, otherwise generates
       an 8-character ID; stores it in a ContextVar (coroutine-local).
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client IDs end up in log lines; only accept short, printable tokens
_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def resolve_request_id(header_value: str | None) -> str:
    if header_value and _CLIENT_ID_PATTERN.match(header_value):
        return header_value
    return new_request_id()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets request_id_var and request.state.request_id; adds X-Request-ID to the response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get("X-Request-ID"))
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
