"""
CRUD service: validation and business rules between controller and DAO.

Every value returned to the caller has been shaped by `dto.to_json`.
Subclass and override a method to add domain rules (see demo/users.py).
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from qcore.core.errors import NotFoundError
from qcore.dao.base import BaseDAO, Entity
from qcore.schemas.dto import DTO

logger = logging.getLogger(__name__)


class CRUDService:
    def __init__(self, dao: BaseDAO):
        self.dao = dao

    @property
    def dto(self) -> DTO:
        return self.dao.dto

    def create(self, data: Any) -> Optional[Entity]:
        entity = self.dto.to_create_dto(data)
        created = self.dao.insert(entity)
        logger.debug("Entity created", extra={"entity_id": created.get(self.dao.id_field)})
        return self.dto.to_json(created)

    def find_all(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> list[Entity]:
        return [self.dto.to_json(e) for e in self.dao.find_all(filter, options)]

    def find_by_id(self, id: Any) -> Optional[Entity]:
        """Raises NotFoundError when the record is missing or soft-deleted."""
        entity = self.dao.find_by_id(id)
        if entity is None:
            raise NotFoundError(f"Entity not found for ID: {id}", path="id")
        return self.dto.to_json(entity)

    def update(self, id: Any, data: Any) -> Optional[Entity]:
        patch = self.dto.to_update_dto(data)
        return self.dto.to_json(self.dao.update(id, patch))

    def delete(self, id: Any) -> Optional[Entity]:
        return self.dto.to_json(self.dao.delete(id))

    def restore(self, id: Any) -> Optional[Entity]:
        """Undo a soft delete; NotFoundError when the record no longer exists."""
        entity = self.dao.restore(id)
        if entity is None:
            raise NotFoundError(f"Entity not found for ID: {id}", path="id")
        return self.dto.to_json(entity)
