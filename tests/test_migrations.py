"""
Runs the demo migration against SQLite and checks the resulting schema.
"""
import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

MIGRATION = Path(__file__).resolve().parent.parent / "migrations" / "versions" / "0001_create_users_and_posts.py"


@pytest.fixture()
def migration():
    spec = importlib.util.spec_from_file_location("migration_0001", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://")
    yield eng
    eng.dispose()


def run(engine, fn):
    with engine.begin() as conn:
        ctx = MigrationContext.configure(conn)
        with Operations.context(ctx):
            fn()


class TestInitialMigration:
    def test_revision_metadata(self, migration):
        assert migration.revision == "0001"
        assert migration.down_revision is None

    def test_upgrade_creates_tables(self, engine, migration):
        run(engine, migration.upgrade)
        insp = inspect(engine)
        assert set(insp.get_table_names()) == {"users", "posts"}
        user_columns = {c["name"] for c in insp.get_columns("users")}
        assert user_columns == {"id", "username", "email", "password", "is_deleted", "created_at", "updated_at"}
        fks = insp.get_foreign_keys("posts")
        assert fks[0]["referred_table"] == "users"
        assert fks[0]["constrained_columns"] == ["author_id"]

    def test_downgrade_drops_tables(self, engine, migration):
        run(engine, migration.upgrade)
        run(engine, migration.downgrade)
        assert inspect(engine).get_table_names() == []
