"""
Demo resource schemas and their DTOs.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from qcore.schemas.dto import DTO, AutoFields

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserSchema(BaseModel):
    id: int
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8)
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime


class PostSchema(BaseModel):
    id: int
    title: str = Field(min_length=1, max_length=200)
    body: str = ""
    author_id: int
    created_at: datetime


class LoginRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)


user_dto = DTO(
    UserSchema,
    AutoFields(
        id_field="id",
        created_at_field="created_at",
        updated_at_field="updated_at",
        is_deleted_field="is_deleted",
    ),
    hidden_fields=("password",),
)

post_auto_fields = AutoFields(id_field="id", created_at_field="created_at")
