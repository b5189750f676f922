"""
Error normalization pipeline.

Every exception that escapes a route is classified into exactly one
`ErrorKind`, and each kind has exactly one formatter producing the standard
envelope. Classification order only matters inside `classify()`, where more
specific database errors are checked before their base classes.

    pipeline = ErrorPipeline(production=settings.is_production)
    register_error_handlers(app, pipeline)
"""
from __future__ import annotations

import enum
import json
import logging
import re
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from pydantic import ValidationError
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from qcore.core.errors import (
    ApiError,
    DatabaseNotConnectedError,
    ErrorCode,
    MalformedJSONError,
    RecordNotFoundError,
)
from qcore.core.responses import format_response, send_error

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    DUPLICATE_ENTRY = "duplicate_entry"
    FOREIGN_KEY = "foreign_key"
    RECORD_NOT_FOUND = "record_not_found"
    DATABASE_UNAVAILABLE = "database_unavailable"
    DATABASE = "database"
    VALIDATION = "validation"
    MALFORMED_JSON = "malformed_json"
    HTTP = "http"
    API_ERROR = "api_error"
    INTERNAL = "internal"
    UNEXPECTED = "unexpected"


# ---------------------------------------------------------------------------
# Database error inspection
# ---------------------------------------------------------------------------

_UNIQUE_SQLSTATE = "23505"
_FOREIGN_KEY_SQLSTATE = "23503"

_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: ([\w.]+)")
_MYSQL_DUPLICATE_RE = re.compile(r"Duplicate entry .* for key '([\w.]+)'")
_TABLE_RE = re.compile(r"\b(?:INSERT INTO|UPDATE|DELETE FROM)\s+\"?(\w+)\"?", re.IGNORECASE)
_CONNECTION_RE = re.compile(
    r"(could not connect|connection refused|connection .*closed|server closed"
    r"|unable to open database|timeout expired|can't connect)",
    re.IGNORECASE,
)


def _sqlstate(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _constraint_name(exc: SQLAlchemyError) -> Optional[str]:
    diag = getattr(getattr(exc, "orig", None), "diag", None)
    return getattr(diag, "constraint_name", None)


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return (
        _sqlstate(exc) == _UNIQUE_SQLSTATE
        or "UNIQUE constraint failed" in message
        or "Duplicate entry" in message
    )


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    return (
        _sqlstate(exc) == _FOREIGN_KEY_SQLSTATE
        or "FOREIGN KEY constraint failed" in str(exc.orig)
        or "foreign key constraint" in str(exc.orig).lower()
    )


def _is_connection_failure(exc: SQLAlchemyError) -> bool:
    if getattr(exc, "connection_invalidated", False):
        return True
    return bool(_CONNECTION_RE.search(str(getattr(exc, "orig", None) or exc)))


def _table_name(exc: SQLAlchemyError) -> str:
    diag = getattr(getattr(exc, "orig", None), "diag", None)
    table = getattr(diag, "table_name", None)
    if table:
        return table
    match = _TABLE_RE.search(getattr(exc, "statement", None) or "")
    return match.group(1) if match else "unknown"


def duplicate_field(exc: IntegrityError) -> str:
    """
    Name of the field behind a unique violation.

    "UNIQUE constraint failed: users.email"  -> "email"      (SQLite)
    constraint "users_email_key"              -> "email"      (PostgreSQL)
    """
    message = str(exc.orig)
    for pattern in (_SQLITE_UNIQUE_RE, _MYSQL_DUPLICATE_RE):
        match = pattern.search(message)
        if match:
            return match.group(1).split(".")[-1]
    constraint = _constraint_name(exc)
    if constraint:
        parts = constraint.split("_")
        if len(parts) > 1:
            return parts[-2]
    return "unknown"


def foreign_key_path(exc: IntegrityError) -> list[str]:
    """[table, field] for a foreign-key violation, field from `<table>_<field>_fkey`."""
    table = _table_name(exc)
    constraint = _constraint_name(exc) or ""
    field_name = "unknown"
    if constraint.endswith("_fkey"):
        field_name = constraint[: -len("_fkey")]
        if table != "unknown" and field_name.startswith(f"{table}_"):
            field_name = field_name[len(table) + 1:]
    return [table, field_name]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ApiError):
        return ErrorKind.API_ERROR
    if isinstance(exc, RecordNotFoundError):
        return ErrorKind.RECORD_NOT_FOUND
    if isinstance(exc, IntegrityError):
        if _is_unique_violation(exc):
            return ErrorKind.DUPLICATE_ENTRY
        if _is_foreign_key_violation(exc):
            return ErrorKind.FOREIGN_KEY
        return ErrorKind.DATABASE
    if isinstance(exc, (DatabaseNotConnectedError, DisconnectionError, InterfaceError)):
        return ErrorKind.DATABASE_UNAVAILABLE
    if isinstance(exc, OperationalError) and _is_connection_failure(exc):
        return ErrorKind.DATABASE_UNAVAILABLE
    if isinstance(exc, SQLAlchemyError):
        return ErrorKind.DATABASE
    if isinstance(exc, (MalformedJSONError, json.JSONDecodeError)):
        return ErrorKind.MALFORMED_JSON
    if isinstance(exc, RequestValidationError):
        if any(e.get("type") == "json_invalid" for e in exc.errors()):
            return ErrorKind.MALFORMED_JSON
        return ErrorKind.VALIDATION
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, StarletteHTTPException):
        return ErrorKind.HTTP
    if isinstance(exc, Exception):
        return ErrorKind.INTERNAL
    return ErrorKind.UNEXPECTED


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

@dataclass
class ErrorResolution:
    status_code: int
    message: str
    errors: list[dict[str, Any]]
    with_stack: bool = False
    headers: Mapping[str, str] = field(default_factory=dict)


def _detail(path: Any, message: str, code: ErrorCode) -> dict[str, Any]:
    return {"path": path, "message": message, "code": code}


def _format_duplicate(exc: IntegrityError) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_409_CONFLICT,
        "Conflict",
        [_detail(duplicate_field(exc), "Provide unique entry", ErrorCode.DUPLICATE_ENTRY)],
    )


def _format_foreign_key(exc: IntegrityError) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_409_CONFLICT,
        "Conflict",
        [_detail(foreign_key_path(exc), "Foreign key constraint failed",
                 ErrorCode.FOREIGN_KEY_CONSTRAINT)],
    )


def _format_record_not_found(exc: RecordNotFoundError) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_404_NOT_FOUND,
        "Not Found",
        [_detail(exc.model_name, exc.cause, ErrorCode.RESOURCE_NOT_FOUND)],
    )


def _format_database_unavailable(exc: BaseException) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Service Unavailable",
        [_detail("database", "Database unavailable", ErrorCode.DATABASE_ERROR)],
    )


def _format_database(exc: BaseException) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Database Error",
        [_detail("database", "A database error occurred", ErrorCode.DATABASE_ERROR)],
    )


def _format_validation(exc: ValidationError | RequestValidationError) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_400_BAD_REQUEST,
        "Validation Error",
        [
            _detail(
                ".".join(str(loc) for loc in issue.get("loc", ())) or "unknown",
                issue.get("msg", "Invalid value"),
                ErrorCode.VALIDATION_ERROR,
            )
            for issue in exc.errors()
        ],
    )


def _format_malformed_json(exc: BaseException) -> ErrorResolution:
    path = getattr(exc, "path", None) or "body"
    message = getattr(exc, "message", None) or "Invalid JSON body provided"
    if isinstance(exc, RequestValidationError):
        message = "Invalid JSON body provided"
    return ErrorResolution(
        status.HTTP_400_BAD_REQUEST,
        "Invalid JSON",
        [_detail(path, message, ErrorCode.BAD_REQUEST)],
    )


_HTTP_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.RESOURCE_NOT_FOUND,
    status.HTTP_409_CONFLICT: ErrorCode.CONFLICT,
}


def _format_http(exc: StarletteHTTPException) -> ErrorResolution:
    if exc.status_code in _HTTP_STATUS_CODES:
        code = _HTTP_STATUS_CODES[exc.status_code]
    elif exc.status_code >= 500:
        code = ErrorCode.INTERNAL_SERVER_ERROR
    else:
        code = ErrorCode.BAD_REQUEST
    message = str(exc.detail)
    return ErrorResolution(
        exc.status_code,
        message,
        [_detail("request", message, code)],
        headers=exc.headers or {},
    )


def _format_api_error(exc: ApiError) -> ErrorResolution:
    return ErrorResolution(
        exc.status_code,
        exc.message,
        [_detail(exc.path or "unknown", exc.message, exc.code)],
        with_stack=True,
    )


def _format_internal(exc: BaseException) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        [_detail(
            getattr(exc, "path", None) or "unknown",
            str(exc) or "An unexpected error occurred",
            ErrorCode.UNKNOWN,
        )],
        with_stack=True,
    )


def _format_unexpected(exc: BaseException) -> ErrorResolution:
    return ErrorResolution(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        [_detail("unknown", str(exc) or "An unknown error occurred", ErrorCode.UNKNOWN)],
        with_stack=True,
    )


FORMATTERS: dict[ErrorKind, Callable[[Any], ErrorResolution]] = {
    ErrorKind.DUPLICATE_ENTRY: _format_duplicate,
    ErrorKind.FOREIGN_KEY: _format_foreign_key,
    ErrorKind.RECORD_NOT_FOUND: _format_record_not_found,
    ErrorKind.DATABASE_UNAVAILABLE: _format_database_unavailable,
    ErrorKind.DATABASE: _format_database,
    ErrorKind.VALIDATION: _format_validation,
    ErrorKind.MALFORMED_JSON: _format_malformed_json,
    ErrorKind.HTTP: _format_http,
    ErrorKind.API_ERROR: _format_api_error,
    ErrorKind.INTERNAL: _format_internal,
    ErrorKind.UNEXPECTED: _format_unexpected,
}


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class ErrorPipeline:
    def __init__(self, production: bool = False):
        self.production = production

    def resolve(self, exc: BaseException) -> tuple[dict[str, Any], Mapping[str, str]]:
        """Return (envelope, headers) for any raised value."""
        kind = classify(exc)
        resolution = FORMATTERS[kind](exc)
        stack = None
        if resolution.with_stack and not self.production:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

        if resolution.status_code >= 500:
            logger.error(
                "Request failed: %s", exc,
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"error_kind": kind.value, "status_code": resolution.status_code},
            )
        else:
            logger.warning(
                "Request rejected: %s", resolution.message,
                extra={"error_kind": kind.value, "status_code": resolution.status_code},
            )

        envelope = format_response(
            resolution.status_code,
            resolution.message,
            errors=resolution.errors,
            stack=stack,
        )
        return envelope, resolution.headers

    def to_response(self, exc: BaseException) -> JSONResponse:
        envelope, headers = self.resolve(exc)
        return send_error(envelope, headers)


def get_pipeline(request: Request) -> ErrorPipeline:
    """The app's pipeline, or a production-safe default when none is installed."""
    pipeline = getattr(request.app.state, "error_pipeline", None)
    return pipeline if pipeline is not None else ErrorPipeline(production=True)


class ErrorCatchingRoute(APIRoute):
    """
    Route class that hands every exception raised by the endpoint or its
    dependencies (sync or async) to the error pipeline.
    """

    def get_route_handler(self) -> Callable:
        route_handler = super().get_route_handler()

        async def error_catching_handler(request: Request):
            try:
                return await route_handler(request)
            except Exception as exc:
                return get_pipeline(request).to_response(exc)

        return error_catching_handler


def register_error_handlers(app: FastAPI, pipeline: ErrorPipeline) -> None:
    """Install the pipeline as the app-level handler for errors outside qcore routes."""
    app.state.error_pipeline = pipeline

    async def pipeline_handler(request: Request, exc: Exception) -> JSONResponse:
        return get_pipeline(request).to_response(exc)

    app.add_exception_handler(StarletteHTTPException, pipeline_handler)
    app.add_exception_handler(RequestValidationError, pipeline_handler)
    app.add_exception_handler(Exception, pipeline_handler)
