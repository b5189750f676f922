"""
Tests for app assembly: rate limiting, request logging, the resource factory
and the database service lifecycle.
"""
import json
import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from qcore.app import create_app
from qcore.core.errors import DatabaseNotConnectedError
from qcore.core.events import EventBus
from qcore.core.observability import JSONFormatter, setup_logging
from qcore.db.database import DatabaseService
from qcore.factory import crud_router

from demo.models import Post
from demo.schemas import PostSchema, post_auto_fields


class TestRateLimit:
    def test_limit_exceeded(self, settings, database):
        limited = settings.model_copy(update={"RATE_LIMIT_ENABLED": True, "RATE_LIMIT": "2/minute"})
        app = create_app(limited, database, configure_logging=False)
        with TestClient(app) as c:
            assert c.get("/health").status_code == 200
            assert c.get("/health").status_code == 200
            r = c.get("/health")
        assert r.status_code == 429
        assert r.json()["message"] == "Too many requests"
        assert r.json()["success"] is False

    def test_disabled(self, client):
        for _ in range(5):
            assert client.get("/health").status_code == 200


class TestRequestLogging:
    def test_request_and_response_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="qcore.core.request_logger"):
            client.get("/users/999")
        records = [
            r for r in caplog.records
            if r.name == "qcore.core.request_logger" and not r.getMessage().startswith("Slow")
        ]
        assert [r.getMessage() for r in records] == ["Request", "Response", "API Error"]
        response = records[1]
        assert response.status == 404
        assert response.method == "GET"

    def test_options_not_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="qcore.core.request_logger"):
            client.options("/users")
        assert [r for r in caplog.records if r.name == "qcore.core.request_logger"] == []

    def test_slow_request_warning(self, settings, database, caplog):
        slow = settings.model_copy(update={"SLOW_REQUEST_MS": -1})
        app = create_app(slow, database, configure_logging=False)
        with TestClient(app) as c, caplog.at_level(logging.INFO, logger="qcore.core.request_logger"):
            c.get("/health")
        assert any(r.getMessage().startswith("Slow request detected") for r in caplog.records)


class TestFactory:
    def test_crud_router_end_to_end(self, settings, database, user_dao):
        received = []
        events = EventBus()
        events.on("posts.deleted", lambda payload: received.append(payload["id"]))
        posts = crud_router(Post, PostSchema, post_auto_fields, database, base_path="/posts", events=events)
        app = create_app(settings, database, routers=[posts], configure_logging=False)
        author = user_dao.insert({"email": "a@x.io", "password": "hash"})

        with TestClient(app) as c:
            assert c.get("/posts").json()["data"] == []
            r = c.post("/posts", json={"title": "Hi", "author_id": author["id"]})
            assert r.status_code == 201
            post_id = r.json()["data"]["id"]
            assert c.delete(f"/posts/{post_id}").status_code == 200

        assert "GET /posts/{id}" in posts.get_registered_routes()
        assert received == [post_id]

    def test_requires_model_and_database(self):
        with pytest.raises(ValueError):
            crud_router(schema=PostSchema)


class TestDatabaseService:
    def test_session_requires_connect(self):
        db = DatabaseService("sqlite://", poolclass=StaticPool)
        assert db.is_connected is False
        with pytest.raises(DatabaseNotConnectedError):
            with db.session():
                pass

    def test_connect_is_idempotent(self):
        db = DatabaseService("sqlite://", poolclass=StaticPool)
        db.connect()
        db.connect()
        assert db.is_connected
        assert db.health_check() is True
        db.disconnect()
        assert db.health_check() is False

    def test_get_db_yields_session(self, database):
        gen = database.get_db()
        session = next(gen)
        assert session.is_active
        with pytest.raises(StopIteration):
            next(gen)


class TestLogging:
    def test_json_formatter_includes_extras(self):
        record = logging.LogRecord("qcore.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.status = 201
        out = json.loads(JSONFormatter().format(record))
        assert out["message"] == "hello world"
        assert out["level"] == "INFO"
        assert out["status"] == 201
        assert "args" not in out

    def test_setup_logging_is_idempotent(self, settings, tmp_path):
        configured = settings.model_copy(update={"LOG_DIR": str(tmp_path), "LOG_FORMAT": "json"})
        root = logging.getLogger()
        before = list(root.handlers)
        level = root.level
        try:
            setup_logging(configured)
            setup_logging(configured)
            added = [h for h in root.handlers if h not in before]
            assert len(added) == 2
            assert (tmp_path / "application.log").exists()
        finally:
            for handler in [h for h in root.handlers if h not in before]:
                root.removeHandler(handler)
                handler.close()
            root.setLevel(level)

    def test_log_level_derived_from_env(self, settings):
        assert settings.log_level == "DEBUG"
        assert settings.model_copy(update={"APP_ENV": "production"}).log_level == "INFO"
        assert settings.model_copy(update={"LOG_LEVEL": "warning"}).log_level == "WARNING"
