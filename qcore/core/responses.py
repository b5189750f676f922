"""
Envelope builders.

format_response(...)  -> dict           (envelope only, nothing sent)
send_response(...)    -> JSONResponse   (success path used by controllers)
send_error(...)       -> JSONResponse   (error path used by the error pipeline)
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from qcore.schemas.common import ErrorDetail


def format_response(
    status_code: int,
    message: str,
    data: Any = None,
    errors: Optional[Iterable[ErrorDetail | Mapping[str, Any]]] = None,
    stack: Optional[str] = None,
) -> dict[str, Any]:
    """Build the envelope; keys without a value are left out."""
    body: dict[str, Any] = {
        "success": 200 <= status_code < 300,
        "statusCode": status_code,
        "message": message,
    }
    if data is not None:
        body["data"] = jsonable_encoder(data)
    if errors is not None:
        body["errors"] = [
            ErrorDetail.model_validate(e).model_dump(mode="json") for e in errors
        ]
    if stack:
        body["stack"] = stack
    return body


def send_response(status_code: int, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=format_response(status_code, message, data=data),
    )


def send_error(
    envelope: dict[str, Any],
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=envelope["statusCode"],
        content=envelope,
        headers=dict(headers) if headers else None,
    )
