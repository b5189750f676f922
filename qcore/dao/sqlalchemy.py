"""
SQLAlchemy adapter for BaseDAO.

Each call outside a transaction opens its own unit of work through
DatabaseService.session(). Inside `with_transaction` the DAO is bound to the
transaction's session and only flushes; the enclosing unit of work commits.

List options
------------
limit  int >= 0
skip   int >= 0
sort   {"field": "asc" | "desc" | 1 | -1}  or  "field" / "-field"
"""
from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

from sqlalchemy import false, inspect as sa_inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from qcore.core.errors import BadRequestError, RecordNotFoundError
from qcore.dao.base import BaseDAO, Entity
from qcore.db.database import DatabaseService
from qcore.schemas.dto import DTO

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ASCENDING = {"asc", "ascending", "1", 1}
_DESCENDING = {"desc", "descending", "-1", -1}


class SQLAlchemyDAO(BaseDAO):
    def __init__(
        self,
        model: type,
        dto: DTO,
        database: DatabaseService,
        session: Optional[Session] = None,
    ):
        super().__init__(dto)
        self.model = model
        self.database = database
        self._session = session
        self._columns = {attr.key: attr for attr in sa_inspect(model).mapper.column_attrs}
        if self.id_field not in self._columns:
            raise ValueError(f"{model.__name__} has no column '{self.id_field}'")

    @property
    def model_name(self) -> str:
        return self.model.__name__

    @property
    def in_transaction(self) -> bool:
        return self._session is not None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _scope(self) -> Iterator[Session]:
        if self._session is not None:
            yield self._session
        else:
            with self.database.session() as session:
                yield session

    def _bind(self, session: Session) -> "SQLAlchemyDAO":
        bound = copy.copy(self)
        bound._session = session
        return bound

    def _to_entity(self, row: Any) -> Entity:
        return {key: getattr(row, key) for key in self._columns}

    def _coerce_id(self, value: Any) -> Any:
        """Cast a raw identifier (often a path string) to the id column's type."""
        column = self._columns[self.id_field].columns[0]
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return value
        if isinstance(value, python_type):
            return value
        try:
            return python_type(value)
        except (TypeError, ValueError):
            return None

    def _conditions(self, filter: Entity) -> list[Any]:
        unknown = [key for key in filter if key not in self._columns]
        if unknown:
            raise BadRequestError(
                f"Unknown filter field(s) for {self.model_name}: {', '.join(unknown)}",
                path="filter",
            )
        conditions = []
        for key, value in filter.items():
            if key == self.id_field:
                value = self._coerce_id(value)
                if value is None:
                    conditions.append(false())
                    continue
            conditions.append(getattr(self.model, key) == value)
        return conditions

    def _order_by(self, sort: Any) -> list[Any]:
        if isinstance(sort, str):
            sort = {sort.lstrip("-"): "desc" if sort.startswith("-") else "asc"}
        if not isinstance(sort, dict):
            raise BadRequestError("sort must be an object or a field name", path="sort")

        clauses = []
        for key, direction in sort.items():
            if key not in self._columns:
                raise BadRequestError(f"Unknown sort field: {key}", path="sort")
            column = getattr(self.model, key)
            normalized = direction.lower() if isinstance(direction, str) else direction
            if normalized in _ASCENDING:
                clauses.append(column.asc())
            elif normalized in _DESCENDING:
                clauses.append(column.desc())
            else:
                raise BadRequestError(f"Invalid sort direction for {key}: {direction}", path="sort")
        return clauses

    def _apply_options(self, stmt: Select, options: Entity) -> Select:
        for name in ("limit", "skip"):
            value = options.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise BadRequestError(f"{name} must be a non-negative integer", path=name)
        if options.get("sort"):
            stmt = stmt.order_by(*self._order_by(options["sort"]))
        if options.get("skip"):
            stmt = stmt.offset(options["skip"])
        if options.get("limit"):
            stmt = stmt.limit(options["limit"])
        return stmt

    def _get_row(self, session: Session, id: Any) -> Any:
        return session.scalars(
            select(self.model).where(*self._conditions({self.id_field: id}))
        ).first()

    # ------------------------------------------------------------------
    # Primitive hooks
    # ------------------------------------------------------------------

    def _create(self, data: Entity) -> Entity:
        with self._scope() as session:
            row = self.model(**data)
            session.add(row)
            session.flush()
            session.refresh(row)
            return self._to_entity(row)

    def _find_unique(self, filter: Entity, options: Entity) -> Optional[Entity]:
        with self._scope() as session:
            stmt = select(self.model).where(*self._conditions(filter))
            row = session.scalars(self._apply_options(stmt, options)).first()
            return self._to_entity(row) if row is not None else None

    def _find_all(self, filter: Entity, options: Entity) -> list[Entity]:
        with self._scope() as session:
            stmt = select(self.model).where(*self._conditions(filter))
            rows = session.scalars(self._apply_options(stmt, options)).all()
            return [self._to_entity(row) for row in rows]

    def _update_one(self, id: Any, data: Entity, options: Entity) -> Entity:
        with self._scope() as session:
            row = self._get_row(session, id)
            if row is None:
                raise RecordNotFoundError(self.model_name, "Record to update not found.")
            for key, value in data.items():
                setattr(row, key, value)
            session.flush()
            session.refresh(row)
            return self._to_entity(row)

    def _hard_delete_one(self, id: Any) -> Entity:
        with self._scope() as session:
            row = self._get_row(session, id)
            if row is None:
                raise RecordNotFoundError(self.model_name, "Record to delete does not exist.")
            entity = self._to_entity(row)
            session.delete(row)
            session.flush()
            return entity

    def _soft_delete_one(self, id: Any) -> Entity:
        return self._update_one(id, {self.dto.auto_fields.is_deleted_field: True}, {})

    def _restore(self, id: Any) -> Optional[Entity]:
        with self._scope() as session:
            row = self._get_row(session, id)
            if row is None:
                return None
            setattr(row, self.dto.auto_fields.is_deleted_field, False)
            session.flush()
            session.refresh(row)
            return self._to_entity(row)

    def _with_transaction(self, operation: Callable[["SQLAlchemyDAO"], T]) -> T:
        if self._session is not None:
            return operation(self)
        with self.database.session() as session:
            logger.debug("Transaction started", extra={"model": self.model_name})
            return operation(self._bind(session))
