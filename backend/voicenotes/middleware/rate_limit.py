"""
VoiceNotes Backend — Rate Limiting Middleware
===============================================

Per-IP sliding window: each IP keeps a deque of request timestamps from the
last `rate_limit_window` seconds; once it holds `rate_limit_requests`
entries further requests get 429 with Retry-After until the oldest one ages
out.

State is process-local. With several uvicorn workers every worker enforces
its own budget.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from voicenotes.config import settings
from voicenotes.exceptions import RateLimitExceededError
from voicenotes.middleware.request_id import resolve_request_id

logger = logging.getLogger(__name__)

# Sweep idle IPs after this many tracked requests
SWEEP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._since_sweep = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - settings.rate_limit_window

        hits = self._hits[client_ip]
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= settings.rate_limit_requests:
            retry_after = int(hits[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(hits),
                settings.rate_limit_window,
            )
            # Raised exceptions never reach the app's handlers from here, and
            # RequestIDMiddleware has not run yet
            exc = RateLimitExceededError(retry_after=retry_after)
            rid = resolve_request_id(request)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": rid,
                },
                headers={"Retry-After": str(retry_after), "X-Request-ID": rid},
            )

        hits.append(now)
        self._since_sweep += 1
        if self._since_sweep >= SWEEP_EVERY:
            self._sweep(window_start)

        return await call_next(request)

    def _sweep(self, window_start: float) -> None:
        idle = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for ip in idle:
            del self._hits[ip]
        self._since_sweep = 0
        if idle:
            logger.debug("Dropped rate-limit state for %d idle IP(s)", len(idle))
