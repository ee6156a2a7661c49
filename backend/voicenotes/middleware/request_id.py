"""
VoiceNotes Backend — Request ID Middleware
============================================

Gives every request a correlation id. A client-supplied `X-Request-ID` is
kept (the web client tags autosave calls with its own ids); otherwise an
8-character id is generated. The id is exposed three ways:

    request_id_var       ContextVar read by exception handlers and loggers
    request.state        for route handlers
    X-Request-ID header  echoed on the response
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

MAX_CLIENT_ID_LENGTH = 64


def resolve_request_id(request: Request) -> str:
    """Client-supplied id (truncated) or a fresh 8-character one."""
    supplied = request.headers.get("X-Request-ID", "")
    return supplied[:MAX_CLIENT_ID_LENGTH] or uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request)

        # Not reset afterwards: the catch-all 500 handler runs outside this
        # middleware and still needs the id
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
