"""
Exception hierarchy for qcore.

Rule: every client-visible error carries a machine-readable `code` drawn from
`ErrorCode` so clients can branch on it without parsing English messages.
"""
from __future__ import annotations

import enum
from typing import Any, Optional, Union

from starlette import status


class ErrorCode(str, enum.Enum):
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    FOREIGN_KEY_CONSTRAINT = "FOREIGN_KEY_CONSTRAINT"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    UNKNOWN = "UNKNOWN"


ErrorPath = Union[str, list[str]]


# ---------------------------------------------------------------------------
# Domain-raised API errors
# ---------------------------------------------------------------------------

class ApiError(Exception):
    """An error raised on purpose, carrying its own status, path and code."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        path: Optional[ErrorPath] = None,
        status_code: Optional[int] = None,
        code: Optional[ErrorCode] = None,
    ):
        self.message = message
        self.path = path
        if status_code is not None:
            self.http_status = status_code
        if code is not None:
            self.code = code
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return self.http_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path or "unknown",
            "message": self.message,
            "code": self.code.value,
        }


class BadRequestError(ApiError):
    http_status = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.BAD_REQUEST


class UnauthorizedError(ApiError):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(ApiError):
    http_status = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN


class NotFoundError(ApiError):
    http_status = status.HTTP_404_NOT_FOUND
    code = ErrorCode.RESOURCE_NOT_FOUND


class ConflictError(ApiError):
    http_status = status.HTTP_409_CONFLICT
    code = ErrorCode.CONFLICT


# ---------------------------------------------------------------------------
# Infrastructure errors (classified by the error pipeline)
# ---------------------------------------------------------------------------

class RecordNotFoundError(Exception):
    """The record targeted by a write operation does not exist."""

    def __init__(self, model_name: str, cause: str):
        self.model_name = model_name
        self.cause = cause
        super().__init__(f"{model_name}: {cause}")


class MalformedJSONError(ValueError):
    """A request body or query parameter could not be decoded as JSON."""

    def __init__(self, message: str = "Invalid JSON body provided", path: ErrorPath = "body"):
        self.message = message
        self.path = path
        super().__init__(message)


class SoftDeleteNotSupportedError(RuntimeError):
    pass


class DatabaseNotConnectedError(RuntimeError):
    def __init__(self):
        super().__init__("Database not initialized. Call DatabaseService.connect() first.")


class SchemaConfigError(ValueError):
    """Auto fields declared on a DTO that the schema does not define."""
