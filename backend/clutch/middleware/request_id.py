"""
Clutch Backend — Request ID Middleware
========================================

What:  Assigns an id to each incoming request and echoes it in X-Request-ID.
Why:   Every access-log line and every error envelope (`requestId`) carries
       the same id, so a client report can be matched to server logs.
How:   Uses the client's X-Request-ID when present, otherwise a short UUID.
       Stored in a ContextVar (for loggers and exception handlers) and on
       request.state (for route handlers).
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
