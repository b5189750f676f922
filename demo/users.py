"""
User resource: CRUD plus password hashing, login and a guarded /me endpoint.

POST /users/login          -> {token, user}
GET  /users/me             (Bearer token) -> current user
POST /users/{id}/restore   -> undo a soft delete
"""

import logging
from datetime import timedelta
from typing import Any, Mapping, Optional

from fastapi import Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from qcore.controllers.crud import CRUDController, read_json_body
from qcore.core.auth import AuthGuard
from qcore.core.config import Settings
from qcore.core.errors import UnauthorizedError
from qcore.core.events import EventBus
from qcore.core.responses import send_response
from qcore.core.security import hash_password, issue_token, verify_password
from qcore.dao.base import Entity
from qcore.dao.sqlalchemy import SQLAlchemyDAO
from qcore.db.database import DatabaseService
from qcore.routers.crud import CRUDRouter, RouteSpec
from qcore.services.crud import CRUDService

from demo.models import User
from demo.schemas import LoginRequest, user_dto

logger = logging.getLogger(__name__)


class UserService(CRUDService):
    def __init__(self, dao: SQLAlchemyDAO, settings: Settings):
        super().__init__(dao)
        self.settings = settings

    def _hash(self, password: str) -> str:
        return hash_password(password, self.settings.PASSWORD_HASH_ITERATIONS)

    def create(self, data: Any) -> Optional[Entity]:
        entity = self.dto.to_create_dto(data)
        entity["password"] = self._hash(entity["password"])
        return self.dto.to_json(self.dao.insert(entity))

    def update(self, id: Any, data: Any) -> Optional[Entity]:
        patch = self.dto.to_update_dto(data)
        if "password" in patch:
            patch["password"] = self._hash(patch["password"])
        return self.dto.to_json(self.dao.update(id, patch))

    def authenticate(self, data: Any) -> dict[str, Any]:
        credentials = LoginRequest.model_validate(data)
        user = self.dao.find_one({"email": credentials.email})
        if user is None or not verify_password(credentials.password, user["password"]):
            raise UnauthorizedError("Invalid email or password", path="body")

        token = issue_token(
            {"sub": str(user["id"]), "email": user["email"]},
            self.settings.ACCESS_TOKEN_SECRET,
            expires_in=timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRES_MINUTES),
        )
        return {"token": token, "user": self.dto.to_json(user)}


class UserController(CRUDController):
    service: UserService

    async def login(self, request: Request) -> JSONResponse:
        body = await read_json_body(request)
        data = await run_in_threadpool(self.service.authenticate, body)
        return send_response(status.HTTP_200_OK, "Successfully logged in", data)

    async def me(self, request: Request) -> JSONResponse:
        claims: Mapping[str, Any] = request.state.user
        data = await run_in_threadpool(self.service.find_by_id, claims.get("sub"))
        return send_response(status.HTTP_200_OK, "Successfully fetched data", data)


async def log_signup(payload: Mapping[str, Any]) -> None:
    logger.info("User signed up", extra={"user_id": payload.get("id")})


def users_router(
    database: DatabaseService,
    settings: Settings,
    events: Optional[EventBus] = None,
) -> CRUDRouter:
    service = UserService(SQLAlchemyDAO(User, user_dto, database), settings)
    controller = UserController(service, events=events, resource="users")
    guard = AuthGuard(settings)
    return CRUDRouter(
        controller,
        base_path="/users",
        routes=[
            RouteSpec("/login", "post", controller.login),
            RouteSpec("/me", "get", controller.me, middlewares=[guard]),
            RouteSpec("/{id}/restore", "post", controller.restore),
        ],
    )
