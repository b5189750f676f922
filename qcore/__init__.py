from .app import create_app
from .controllers.crud import CRUDController
from .core.auth import AuthGuard
from .core.config import Settings, get_settings
from .core.errors import (
    ApiError,
    BadRequestError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from .core.events import EventBus
from .core.server import ApiServer
from .dao.base import BaseDAO
from .dao.sqlalchemy import SQLAlchemyDAO
from .db.base import Base
from .db.database import DatabaseService
from .factory import crud_router
from .routers.crud import CRUDRouter, RouteSpec
from .schemas.dto import DTO, AutoFields
from .services.crud import CRUDService

__all__ = [
    "create_app",
    "crud_router",
    "ApiServer",
    "DatabaseService",
    "Base",
    "Settings",
    "get_settings",
    "AutoFields",
    "DTO",
    "BaseDAO",
    "SQLAlchemyDAO",
    "CRUDService",
    "CRUDController",
    "CRUDRouter",
    "RouteSpec",
    "AuthGuard",
    "EventBus",
    "ApiError",
    "BadRequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "ErrorCode",
]
