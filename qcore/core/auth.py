"""
Bearer-token guard for routes.

    guard = AuthGuard(settings)
    router.register_route("/me", "get", me, middlewares=[guard])

On success the token claims are available as `request.state.user`.
"""

import logging
from typing import Any, Optional

import jwt
from fastapi import Request

from qcore.core.config import Settings, get_settings
from qcore.core.errors import UnauthorizedError
from qcore.core.security import verify_token

logger = logging.getLogger(__name__)


class AuthGuard:
    def __init__(self, settings: Optional[Settings] = None, secret: Optional[str] = None):
        self.secret = secret or (settings or get_settings()).ACCESS_TOKEN_SECRET

    def __call__(self, request: Request) -> dict[str, Any]:
        header = request.headers.get("authorization")
        if not header:
            raise UnauthorizedError("Missing Authorization Headers")

        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthorizedError("Invalid token", path="header")

        try:
            claims = verify_token(token.strip(), self.secret)
        except jwt.InvalidTokenError as exc:
            logger.debug("Rejected token: %s", exc)
            raise UnauthorizedError("Invalid token", path="header")

        request.state.user = claims
        return claims
