"""
One-call resource wiring: DTO -> SQLAlchemyDAO -> CRUDService ->
CRUDController -> CRUDRouter.

    posts = crud_router(Post, PostSchema, AutoFields(id_field="id"), database,
                        base_path="/posts")

Any layer can be passed in pre-built to customize it; layers below a supplied
one are then taken from it.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from pydantic import BaseModel

from qcore.controllers.crud import CRUDController
from qcore.core.events import EventBus
from qcore.dao.base import BaseDAO
from qcore.dao.sqlalchemy import SQLAlchemyDAO
from qcore.db.database import DatabaseService
from qcore.routers.crud import CRUDRouter, Middleware, RouteSpec
from qcore.schemas.dto import DTO, AutoFields
from qcore.services.crud import CRUDService


def crud_router(
    model: Optional[type] = None,
    schema: Optional[type[BaseModel]] = None,
    auto_fields: Optional[AutoFields] = None,
    database: Optional[DatabaseService] = None,
    base_path: str = "/",
    *,
    hidden_fields: Iterable[str] = (),
    dto: Optional[DTO] = None,
    dao: Optional[BaseDAO] = None,
    service: Optional[CRUDService] = None,
    controller: Optional[CRUDController] = None,
    events: Optional[EventBus] = None,
    routes: Optional[Iterable[RouteSpec]] = None,
    dependencies: Optional[Sequence[Middleware]] = None,
    disable_default_routes: bool = False,
) -> CRUDRouter:
    if controller is None:
        if service is None:
            if dao is None:
                if model is None or database is None:
                    raise ValueError("model and database are required to build a DAO")
                if dto is None:
                    if schema is None:
                        raise ValueError("schema is required to build a DTO")
                    dto = DTO(schema, auto_fields or AutoFields(), hidden_fields)
                dao = SQLAlchemyDAO(model, dto, database)
            service = CRUDService(dao)
        controller = CRUDController(
            service,
            events=events,
            resource=base_path.strip("/").replace("/", ".") or None,
        )

    return CRUDRouter(
        controller,
        base_path=base_path,
        disable_default_routes=disable_default_routes,
        routes=routes,
        dependencies=dependencies,
    )
