"""
Database service: explicit handle to the engine and session factory.

One instance is created by the application and passed to every DAO and to the
server bootstrap. There is no module-level singleton.

Public API
----------
DatabaseService.connect()       -> None        (verifies connectivity)
DatabaseService.disconnect()    -> None        (disposes the pool)
DatabaseService.session()       -> Session     (unit of work: commit / rollback / close)
DatabaseService.health_check()  -> bool
DatabaseService.get_db          FastAPI dependency yielding a session
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from qcore.core.errors import DatabaseNotConnectedError

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseService:
    def __init__(self, database_url: str, **engine_options: Any):
        if database_url.startswith("sqlite"):
            connect_args = engine_options.setdefault("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
        else:
            engine_options.setdefault("pool_pre_ping", True)

        self.url = database_url
        self.engine: Engine = create_engine(database_url, **engine_options)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        self._connected = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        if self._connected:
            return
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        self._connected = True
        logger.info("Database connected", extra={"database": self.engine.url.render_as_string()})

    def disconnect(self) -> None:
        if not self._connected:
            return
        self.engine.dispose()
        self._connected = False
        logger.info("Database disconnected")

    def create_all(self, metadata: MetaData) -> None:
        metadata.create_all(bind=self.engine)

    def drop_all(self, metadata: MetaData) -> None:
        metadata.drop_all(bind=self.engine)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Unit of work: commits on success, rolls back on any exception."""
        if not self._connected:
            raise DatabaseNotConnectedError()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_db(self) -> Iterator[Session]:
        """FastAPI dependency for routes that need a raw session."""
        with self.session() as session:
            yield session

    def health_check(self) -> bool:
        try:
            with self.session() as session:
                session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, DatabaseNotConnectedError) as exc:
            logger.error("DB health check failed: %s", exc)
            return False
