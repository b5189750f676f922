"""
Shared schema primitives: the response envelope returned by every endpoint.
"""
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from qcore.core.errors import ErrorCode


class ErrorDetail(BaseModel):
    """A single error entry: where it happened, what happened, and its code."""
    path: Union[str, list[str]]
    message: str
    code: ErrorCode


class ApiResponse(BaseModel):
    """Standard envelope for both success and error responses."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    status_code: int = Field(alias="statusCode")
    message: str
    data: Optional[Any] = None
    errors: Optional[list[ErrorDetail]] = None
    stack: Optional[str] = None
