"""
Shared pytest fixtures.

Uses an in-memory SQLite database (one connection shared through StaticPool)
so no external database is required for tests.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from qcore.core.config import Settings
from qcore.dao.sqlalchemy import SQLAlchemyDAO
from qcore.db.base import Base
from qcore.db.database import DatabaseService

from demo.main import create_demo_app
from demo.models import Post, User
from demo.schemas import post_auto_fields, user_dto, PostSchema
from qcore.schemas.dto import DTO

SQLITE_URL = "sqlite://"


@pytest.fixture()
def settings():
    return Settings(
        APP_ENV="test",
        DATABASE_URL=SQLITE_URL,
        ACCESS_TOKEN_SECRET="test-secret",
        PASSWORD_HASH_ITERATIONS=1_000,
        LOG_FORMAT="text",
        LOG_DIR="",
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture()
def database():
    db = DatabaseService(SQLITE_URL, poolclass=StaticPool)
    db.connect()
    db.create_all(Base.metadata)
    yield db
    db.drop_all(Base.metadata)
    db.disconnect()


@pytest.fixture()
def user_dao(database):
    return SQLAlchemyDAO(User, user_dto, database)


@pytest.fixture()
def post_dao(database):
    return SQLAlchemyDAO(Post, DTO(PostSchema, post_auto_fields), database)


@pytest.fixture()
def client(settings, database):
    app = create_demo_app(settings, database, configure_logging=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def create_user(client):
    def _create(email="test@email.com", password="password123", **extra):
        r = client.post("/users", json={"email": email, "password": password, **extra})
        assert r.status_code == 201, r.text
        return r.json()["data"]
    return _create
