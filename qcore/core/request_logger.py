"""
Request / response logging middleware.

One "Request" line when a request arrives and one "Response" line when it
completes; slow requests get a warning and 4xx/5xx responses an extra
"API Error" line. OPTIONS (CORS preflight) requests are not logged.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

RequestResponseEndpoint = Callable[[Request], Awaitable[Response]]

DEFAULT_SLOW_REQUEST_MS = 500


def _request_size(request: Request) -> int:
    try:
        return int(request.headers.get("content-length") or 0)
    except ValueError:
        return 0


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, slow_request_ms: int = DEFAULT_SLOW_REQUEST_MS):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)

        request_data = {
            "method": request.method,
            "url": str(request.url),
            "client": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent", ""),
            "request_size_bytes": _request_size(request),
        }
        logger.info("Request", extra=request_data)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            if duration_ms > self.slow_request_ms:
                logger.warning(
                    "Slow request detected: %.2fms", duration_ms,
                    extra={"url": request_data["url"], "threshold_ms": self.slow_request_ms},
                )

            response_data = {
                **request_data,
                "status": status_code,
                "duration_ms": round(duration_ms, 2),
            }
            logger.info("Response", extra=response_data)
            if status_code >= 400:
                logger.error("API Error", extra=response_data)
