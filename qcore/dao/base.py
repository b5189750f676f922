"""
Storage-agnostic Data-Access-Object contract.

BaseDAO implements the public CRUD surface (soft-delete scoping, delete
semantics, restore rules, transactions) on top of a small set of primitive
hooks that a concrete adapter provides for its storage engine. For
SQLAlchemy use `qcore.dao.sqlalchemy.SQLAlchemyDAO`.

Entities are plain dicts keyed by field name.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, TypeVar

from qcore.core.errors import SoftDeleteNotSupportedError
from qcore.schemas.dto import DTO

Entity = dict[str, Any]
T = TypeVar("T")
DAOType = TypeVar("DAOType", bound="BaseDAO")


class BaseDAO(ABC):
    def __init__(self, dto: DTO):
        self.dto = dto

    @property
    def supports_soft_delete(self) -> bool:
        return self.dto.supports_soft_delete

    @property
    def id_field(self) -> str:
        return self.dto.auto_fields.id_field

    def _scope_deleted(
        self, filter: Optional[Mapping[str, Any]], include_deleted: bool
    ) -> dict[str, Any]:
        """Append `<soft-delete-field> = False` unless deleted rows are wanted."""
        scoped = dict(filter or {})
        if self.supports_soft_delete and not include_deleted:
            scoped[self.dto.auto_fields.is_deleted_field] = False
        return scoped

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_all(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
        include_deleted: bool = False,
    ) -> list[Entity]:
        return self._find_all(self._scope_deleted(filter, include_deleted), dict(options or {}))

    def find_one(
        self,
        filter: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
        include_deleted: bool = False,
    ) -> Optional[Entity]:
        return self._find_unique(self._scope_deleted(filter, include_deleted), dict(options or {}))

    def find_by_id(
        self,
        id: Any,
        options: Optional[Mapping[str, Any]] = None,
        include_deleted: bool = False,
    ) -> Optional[Entity]:
        return self.find_one({self.id_field: id}, options, include_deleted)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, entity: Mapping[str, Any]) -> Entity:
        """Persist an entity already validated by `dto.to_create_dto`."""
        return self._create(dict(entity))

    def update(
        self,
        id: Any,
        entity: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Entity:
        return self._update_one(id, dict(entity), dict(options or {}))

    def delete(
        self,
        id: Any,
        return_record: bool = True,
        hard_delete: bool = False,
    ) -> Optional[Entity]:
        """Soft delete when the entity supports it, hard delete otherwise."""
        if hard_delete or not self.supports_soft_delete:
            return self.hard_delete(id, return_record=return_record)
        return self.soft_delete(id, return_record=return_record)

    def hard_delete(self, id: Any, return_record: bool = True) -> Optional[Entity]:
        result = self._hard_delete_one(id)
        return result if return_record else None

    def soft_delete(self, id: Any, return_record: bool = True) -> Optional[Entity]:
        if not self.supports_soft_delete:
            raise SoftDeleteNotSupportedError("This entity doesn't support soft deletion")
        result = self._soft_delete_one(id)
        return result if return_record else None

    def restore(self, id: Any) -> Optional[Entity]:
        """
        Undo a soft delete. Returns None when the record does not exist
        (never created, or hard-deleted).
        """
        if not self.supports_soft_delete:
            raise SoftDeleteNotSupportedError(
                "Restore operation is available only for entities that support soft deletion"
            )
        return self._restore(id)

    def with_transaction(self: DAOType, operation: Callable[[DAOType], T]) -> T:
        """
        Run `operation` against a DAO bound to a single transaction.
        Nothing is committed if `operation` raises.

            dao.with_transaction(lambda tx: tx.insert(user))
        """
        return self._with_transaction(operation)

    # ------------------------------------------------------------------
    # Primitive hooks implemented per storage engine
    # ------------------------------------------------------------------

    @abstractmethod
    def _create(self, data: Entity) -> Entity: ...

    @abstractmethod
    def _find_unique(self, filter: Entity, options: Entity) -> Optional[Entity]: ...

    @abstractmethod
    def _find_all(self, filter: Entity, options: Entity) -> list[Entity]: ...

    @abstractmethod
    def _update_one(self, id: Any, data: Entity, options: Entity) -> Entity: ...

    @abstractmethod
    def _hard_delete_one(self, id: Any) -> Entity: ...

    @abstractmethod
    def _soft_delete_one(self, id: Any) -> Entity: ...

    @abstractmethod
    def _restore(self, id: Any) -> Optional[Entity]: ...

    @abstractmethod
    def _with_transaction(self: DAOType, operation: Callable[[DAOType], T]) -> T: ...
