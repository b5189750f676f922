"""
Convention-based router binding a CRUDController to REST paths.

GET    <base>/       controller.list
GET    <base>/{id}   controller.get_by_id
POST   <base>/       controller.create
PUT    <base>/{id}   controller.update
DELETE <base>/{id}   controller.delete

    users = CRUDRouter(
        UserController(service),
        base_path="/users",
        routes=[RouteSpec("/me", "get", me_handler, middlewares=[auth_guard])],
    )
    users.register_route("/{id}/restore", "post", restore_handler)
    app.include_router(users.router)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from fastapi import APIRouter, Depends, params

from qcore.controllers.crud import CRUDController
from qcore.core.error_pipeline import ErrorCatchingRoute
from qcore.schemas.common import ApiResponse

HTTP_METHODS = frozenset({"get", "post", "put", "patch", "delete", "head", "options"})

Middleware = Union[Callable[..., Any], params.Depends]


@dataclass
class RouteSpec:
    path: str
    method: str
    handler: Callable[..., Any]
    middlewares: Sequence[Middleware] = field(default_factory=tuple)


def join_paths(base_path: str, path: str) -> str:
    """'/users' + '/{id}' -> '/users/{id}'; trailing slashes dropped, '/' when empty."""
    joined = "/" + "/".join(p.strip("/") for p in (base_path, path) if p.strip("/"))
    return joined.rstrip("/") or "/"


def _as_dependency(middleware: Middleware) -> params.Depends:
    return middleware if isinstance(middleware, params.Depends) else Depends(middleware)


class CRUDRouter:
    def __init__(
        self,
        controller: Optional[CRUDController] = None,
        base_path: str = "/",
        disable_default_routes: bool = False,
        routes: Optional[Iterable[RouteSpec]] = None,
        dependencies: Optional[Sequence[Middleware]] = None,
        tags: Optional[list[str]] = None,
    ):
        if controller is None and not disable_default_routes:
            raise ValueError("A controller is required unless default routes are disabled")

        self.controller = controller
        self.base_path = join_paths(base_path, "")
        self._tags = tags or ([self.base_path.strip("/")] if self.base_path != "/" else None)
        self._router = APIRouter(
            route_class=ErrorCatchingRoute,
            dependencies=[_as_dependency(d) for d in dependencies or ()],
            responses={"default": {"model": ApiResponse}},
        )

        # Configured routes first so static paths such as "/me" win over "/{id}".
        if routes:
            self.register_routes(routes)
        if not disable_default_routes:
            self._register_crud_routes()

    @property
    def router(self) -> APIRouter:
        return self._router

    def register_route(
        self,
        path: str,
        method: str,
        handler: Callable[..., Any],
        middlewares: Sequence[Middleware] = (),
    ) -> "CRUDRouter":
        """Register `handler` at `<base_path><path>`; middlewares run first as dependencies."""
        method = method.lower()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        self._router.add_api_route(
            join_paths(self.base_path, path),
            handler,
            methods=[method.upper()],
            dependencies=[_as_dependency(m) for m in middlewares],
            response_model=None,
            tags=self._tags,
            name=getattr(handler, "__name__", None),
        )
        return self

    def register_routes(self, routes: Iterable[RouteSpec]) -> None:
        for route in routes:
            self.register_route(route.path, route.method, route.handler, route.middlewares)

    def merge_router(
        self,
        router: Union["CRUDRouter", APIRouter],
        path: Optional[str] = None,
    ) -> "CRUDRouter":
        """Mount another router's routes, optionally under `path`."""
        other = router.router if isinstance(router, CRUDRouter) else router
        prefix = join_paths(path, "") if path else ""
        self._router.include_router(other, prefix="" if prefix == "/" else prefix)
        return self

    def get_registered_routes(self) -> list[str]:
        """'METHOD /path' for every registered route, for debugging."""
        return [
            f"{method} {route.path}"
            for route in self._router.routes
            for method in sorted(getattr(route, "methods", None) or ())
        ]

    def _register_crud_routes(self) -> None:
        controller = self.controller
        self.register_routes([
            RouteSpec("/", "get", controller.list),
            RouteSpec("/{id}", "get", controller.get_by_id),
            RouteSpec("/", "post", controller.create),
            RouteSpec("/{id}", "put", controller.update),
            RouteSpec("/{id}", "delete", controller.delete),
        ])
