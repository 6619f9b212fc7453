"""Request ID and request timing middleware."""

import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000.0

# Payment verification polls on purpose; do not flag it as slow
_SLOW_EXEMPT_PATHS = ("/api/v1/onboarding/payment-callback",)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, reusing an inbound ``X-Request-ID`` when present.

    The ID is stored in ``request.state.request_id`` and echoed in the
    ``X-Request-ID`` response header.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Add ``X-Response-Time`` and warn on requests slower than one second."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        start = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        path = request.url.path
        if duration_ms >= SLOW_REQUEST_THRESHOLD_MS and path not in _SLOW_EXEMPT_PATHS:
            logger.warning(
                "Slow request: %s %s completed in %.2f ms [request_id=%s, status=%d]",
                request.method,
                path,
                duration_ms,
                getattr(request.state, "request_id", "unknown"),
                response.status_code,
            )

        return response
