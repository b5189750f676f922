"""
Dict-backed BaseDAO used to test the storage-agnostic contract.
"""
import copy
import itertools

from qcore.core.errors import RecordNotFoundError
from qcore.dao.base import BaseDAO


class MemoryDAO(BaseDAO):
    def __init__(self, dto, store=None, ids=None):
        super().__init__(dto)
        self.store = store if store is not None else {}
        self._ids = ids or itertools.count(1)

    def _matches(self, row, filter):
        return all(row.get(k) == v for k, v in filter.items())

    def _create(self, data):
        row = dict(data)
        row.setdefault(self.id_field, next(self._ids))
        if self.supports_soft_delete:
            row.setdefault(self.dto.auto_fields.is_deleted_field, False)
        self.store[row[self.id_field]] = row
        return dict(row)

    def _find_unique(self, filter, options):
        for row in self.store.values():
            if self._matches(row, filter):
                return dict(row)
        return None

    def _find_all(self, filter, options):
        rows = [dict(r) for r in self.store.values() if self._matches(r, filter)]
        skip = options.get("skip") or 0
        limit = options.get("limit")
        return rows[skip:skip + limit] if limit else rows[skip:]

    def _update_one(self, id, data, options):
        if id not in self.store:
            raise RecordNotFoundError("Memory", "Record to update not found.")
        self.store[id].update(data)
        return dict(self.store[id])

    def _hard_delete_one(self, id):
        if id not in self.store:
            raise RecordNotFoundError("Memory", "Record to delete does not exist.")
        return self.store.pop(id)

    def _soft_delete_one(self, id):
        return self._update_one(id, {self.dto.auto_fields.is_deleted_field: True}, {})

    def _restore(self, id):
        if id not in self.store:
            return None
        return self._update_one(id, {self.dto.auto_fields.is_deleted_field: False}, {})

    def _with_transaction(self, operation):
        snapshot = copy.deepcopy(self.store)
        tx = MemoryDAO(self.dto, snapshot, self._ids)
        result = operation(tx)
        self.store.clear()
        self.store.update(snapshot)
        return result
