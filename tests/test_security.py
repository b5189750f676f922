"""
Tests for password hashing, token handling and the AuthGuard dependency.
"""
from datetime import timedelta

import jwt
import pytest
from starlette.requests import Request

from qcore.core.auth import AuthGuard
from qcore.core.errors import UnauthorizedError
from qcore.core.security import hash_password, issue_token, verify_password, verify_token


def make_request(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("password123", iterations=1_000)
        assert hashed.startswith("pbkdf2_sha256$1000$")
        assert verify_password("password123", hashed)
        assert not verify_password("password124", hashed)

    def test_salted(self):
        assert hash_password("same", iterations=1_000) != hash_password("same", iterations=1_000)

    @pytest.mark.parametrize("stored", ["", "garbage", "md5$1$salt$abc", "pbkdf2_sha256$x$salt$abc"])
    def test_malformed_hash(self, stored):
        assert verify_password("password123", stored) is False


class TestTokens:
    def test_round_trip(self):
        token = issue_token({"sub": "1", "email": "a@b.co"}, "secret")
        claims = verify_token(token, "secret")
        assert claims["sub"] == "1"
        assert claims["exp"] - claims["iat"] == int(timedelta(days=2).total_seconds())

    def test_wrong_secret(self):
        token = issue_token({"sub": "1"}, "secret")
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token, "other")

    def test_expired(self):
        token = issue_token({"sub": "1"}, "secret", expires_in=timedelta(seconds=-10))
        with pytest.raises(jwt.ExpiredSignatureError):
            verify_token(token, "secret")

    def test_no_expiry(self):
        token = issue_token({"sub": "1"}, "secret", expires_in=None)
        assert "exp" not in verify_token(token, "secret")


class TestAuthGuard:
    def setup_method(self):
        self.guard = AuthGuard(secret="secret")

    def test_missing_header(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            self.guard(make_request())
        assert exc_info.value.message == "Missing Authorization Headers"
        assert exc_info.value.status_code == 401

    def test_invalid_token(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            self.guard(make_request({"Authorization": "Bearer nope"}))
        assert exc_info.value.message == "Invalid token"
        assert exc_info.value.path == "header"

    def test_wrong_scheme(self):
        token = issue_token({"sub": "1"}, "secret")
        with pytest.raises(UnauthorizedError):
            self.guard(make_request({"Authorization": f"Basic {token}"}))

    def test_valid_token_sets_user(self):
        token = issue_token({"sub": "1"}, "secret")
        request = make_request({"Authorization": f"Bearer {token}"})
        claims = self.guard(request)
        assert claims["sub"] == "1"
        assert request.state.user == claims
