"""
Unit tests for CRUDRouter route registration and list-query parsing.
"""
import pytest
from fastapi import APIRouter, FastAPI, Request
from fastapi.testclient import TestClient

from qcore.controllers.crud import CRUDController, parse_list_query
from qcore.core.errors import BadRequestError, MalformedJSONError
from qcore.routers.crud import CRUDRouter, RouteSpec, join_paths
from qcore.services.crud import CRUDService

from demo.schemas import user_dto
from memory_dao import MemoryDAO


def make_controller():
    return CRUDController(CRUDService(MemoryDAO(user_dto)))


async def ping(request: Request):
    return {"pong": True}


class TestJoinPaths:
    @pytest.mark.parametrize("base, path, expected", [
        ("/", "/", "/"),
        ("/", "/{id}", "/{id}"),
        ("/users", "/", "/users"),
        ("/users/", "/{id}", "/users/{id}"),
        ("users", "me", "/users/me"),
        ("", "", "/"),
    ])
    def test_join(self, base, path, expected):
        assert join_paths(base, path) == expected


class TestCRUDRouter:
    def test_default_routes(self):
        router = CRUDRouter(make_controller(), base_path="/users")
        assert router.get_registered_routes() == [
            "GET /users",
            "GET /users/{id}",
            "POST /users",
            "PUT /users/{id}",
            "DELETE /users/{id}",
        ]

    def test_default_routes_at_root(self):
        router = CRUDRouter(make_controller())
        assert "GET /" in router.get_registered_routes()
        assert "DELETE /{id}" in router.get_registered_routes()

    def test_disable_default_routes(self):
        router = CRUDRouter(disable_default_routes=True)
        assert router.get_registered_routes() == []

    def test_controller_required_for_defaults(self):
        with pytest.raises(ValueError):
            CRUDRouter()

    def test_register_route(self):
        router = CRUDRouter(make_controller(), base_path="/users")
        returned = router.register_route("ping", "GET", ping)
        assert returned is router
        assert "GET /users/ping" in router.get_registered_routes()

    def test_unsupported_method(self):
        router = CRUDRouter(disable_default_routes=True)
        with pytest.raises(ValueError):
            router.register_route("/x", "trace", ping)

    def test_configured_routes_take_precedence(self):
        router = CRUDRouter(
            make_controller(),
            base_path="/users",
            routes=[RouteSpec("/ping", "get", ping)],
        )
        routes = router.get_registered_routes()
        assert routes.index("GET /users/ping") < routes.index("GET /users/{id}")

        app = FastAPI()
        app.include_router(router.router)
        assert TestClient(app).get("/users/ping").json() == {"pong": True}

    def test_merge_router(self):
        sub = APIRouter()
        sub.add_api_route("/ping", ping, methods=["GET"])
        router = CRUDRouter(disable_default_routes=True)
        router.merge_router(sub, "/tools")
        assert router.get_registered_routes() == ["GET /tools/ping"]

    def test_merge_crud_router_without_path(self):
        users = CRUDRouter(make_controller(), base_path="/users")
        root = CRUDRouter(disable_default_routes=True).merge_router(users)
        assert "GET /users/{id}" in root.get_registered_routes()

    def test_middlewares_run_before_handler(self):
        calls = []

        def middleware(request: Request):
            calls.append(request.url.path)

        router = CRUDRouter(disable_default_routes=True)
        router.register_route("/ping", "get", ping, middlewares=[middleware])
        app = FastAPI()
        app.include_router(router.router)
        TestClient(app).get("/ping")
        assert calls == ["/ping"]


class TestParseListQuery:
    def test_empty(self):
        assert parse_list_query({}) == ({}, {})

    def test_decodes_json_values(self):
        filter, options = parse_list_query({
            "filter": '{"email": "a@b.co"}',
            "limit": "10",
            "skip": "5",
            "sort": '{"email": "desc"}',
        })
        assert filter == {"email": "a@b.co"}
        assert options == {"limit": 10, "skip": 5, "sort": {"email": "desc"}}

    def test_ignores_unknown_params(self):
        assert parse_list_query({"page": "2"}) == ({}, {})

    def test_malformed_value(self):
        with pytest.raises(MalformedJSONError) as exc_info:
            parse_list_query({"limit": "ten"})
        assert exc_info.value.path == "query.limit"

    def test_filter_must_be_object(self):
        with pytest.raises(BadRequestError):
            parse_list_query({"filter": "[1, 2]"})

    def test_sort_accepts_bare_field_name(self):
        assert parse_list_query({"sort": "-email"}) == ({}, {"sort": "-email"})
        assert parse_list_query({"sort": '"email"'}) == ({}, {"sort": "email"})
