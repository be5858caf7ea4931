"""FastAPI middleware to attach a unique X-Request-ID header to every request
and bind it into structlog contextvars so that all log lines contain the same
request_id for correlation across services.
"""
from __future__ import annotations

import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Use structlog contextvars helpers. _bind binds for this context, _clear at end.
from structlog.contextvars import bind_contextvars, clear_contextvars

# Incoming ids are echoed into logs and headers, so only accept plain tokens
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request_id to each incoming request.

    A well-formed id sent by the caller is reused; otherwise a UUID4 hex is
    generated. The ID is returned in the "X-Request-ID" response header and
    bound into structlog contextvars.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # type: ignore[override]
        incoming = request.headers.get(self.header_name, "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else uuid.uuid4().hex
        bind_contextvars(request_id=request_id)
        request.state.request_id = request_id

        try:
            response: Response = await call_next(request)
        finally:
            # Always clear contextvars to avoid leaking to other requests
            clear_contextvars()

        response.headers[self.header_name] = request_id
        return response
