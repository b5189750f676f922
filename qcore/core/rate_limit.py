"""
Per-client rate limiting (slowapi).

Every route gets the default limit from `Settings.RATE_LIMIT`, keyed by
client address. Individual routes can still be decorated with
`app.state.limiter.limit(...)`.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from qcore.core.config import Settings
from qcore.core.errors import ErrorCode
from qcore.core.responses import format_response, send_error

logger = logging.getLogger(__name__)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # Must stay synchronous: SlowAPIMiddleware calls it without awaiting.
    logger.warning(
        "Rate limit exceeded",
        extra={"client": get_remote_address(request), "url": str(request.url)},
    )
    envelope = format_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "Too many requests",
        errors=[{
            "path": "request",
            "message": f"Rate limit exceeded: {exc.detail}",
            "code": ErrorCode.BAD_REQUEST,
        }],
    )
    return send_error(envelope)


def install_rate_limiter(app: FastAPI, settings: Settings) -> Limiter:
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.RATE_LIMIT],
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    if settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting enabled", extra={"limit": settings.RATE_LIMIT})
    return limiter
