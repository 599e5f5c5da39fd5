"""
Clutch Backend — Rate Limiting Middleware
===========================================

What:  Per-IP sliding window rate limiter (default 1000 requests / 15 min).
Why:   Protects the API and the database from a single noisy client.
How:   Keeps each IP's request timestamps in memory; timestamps older than
       the window are dropped on every request. A client at the limit gets
       the standard error envelope with 429 RATE_LIMIT_EXCEEDED and a
       Retry-After header.

Single-process only: each uvicorn worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from clutch.config import settings
from clutch.schemas.envelope import ErrorEnvelope

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    `limit` and `window` default to settings.rate_limit_requests and
    settings.rate_limit_window (seconds). /health and the docs are never
    limited.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}
    CLEANUP_EVERY = 1000

    def __init__(self, app, limit: Optional[int] = None, window: Optional[int] = None):
        super().__init__(app)
        self.limit = limit or settings.rate_limit_requests
        self.window = window or settings.rate_limit_window
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - self.window

        timestamps = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = timestamps

        if len(timestamps) >= self.limit:
            retry_after = int(timestamps[0] + self.window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window,
            )
            body = ErrorEnvelope(
                error="RATE_LIMIT_EXCEEDED",
                message="Too many requests from this IP, please try again later.",
                requestId=getattr(request.state, "request_id", None),
            )
            return JSONResponse(
                status_code=429,
                content=body.model_dump(mode="json", exclude_none=True),
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)

        self._seen += 1
        if self._seen % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
