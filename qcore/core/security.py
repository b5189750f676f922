"""
Password hashing and access tokens.

Password hashes are self-describing so the cost factor can change without
invalidating stored passwords:

    pbkdf2_sha256$<iterations>$<salt>$<hex digest>

Tokens are HS256 JWTs (PyJWT).
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import jwt

HASH_ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 100_000
TOKEN_ALGORITHM = "HS256"
DEFAULT_TOKEN_LIFETIME = timedelta(days=2)


def _pbkdf2(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        iterations,
    ).hex()


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    return f"{HASH_ALGORITHM}${iterations}${salt}${_pbkdf2(password, salt, iterations)}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt, digest = password_hash.split("$")
        if algorithm != HASH_ALGORITHM:
            return False
        candidate = _pbkdf2(password, salt, int(iterations))
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(candidate, digest)


def issue_token(
    payload: Mapping[str, Any],
    secret: str,
    expires_in: Optional[timedelta] = DEFAULT_TOKEN_LIFETIME,
) -> str:
    """Sign `payload`; `iat` and `exp` are added unless `expires_in` is None."""
    claims = dict(payload)
    now = datetime.now(timezone.utc)
    claims.setdefault("iat", int(now.timestamp()))
    if expires_in is not None:
        claims["exp"] = int((now + expires_in).timestamp())
    return jwt.encode(claims, secret, algorithm=TOKEN_ALGORITHM)


def verify_token(token: str, secret: str) -> dict[str, Any]:
    """Decoded claims. Raises jwt.InvalidTokenError (incl. expiry) on failure."""
    return jwt.decode(token, secret, algorithms=[TOKEN_ALGORITHM])
