"""
Unit tests for CRUDService on top of the dict-backed DAO.
"""
import pytest
from pydantic import ValidationError

from qcore.core.errors import BadRequestError, ErrorCode, NotFoundError
from qcore.services.crud import CRUDService

from demo.schemas import user_dto
from memory_dao import MemoryDAO


@pytest.fixture()
def service():
    return CRUDService(MemoryDAO(user_dto))


class TestCRUDService:
    def test_create_validates_and_hides_password(self, service):
        user = service.create({"email": "test@email.com", "password": "password123"})
        assert user["email"] == "test@email.com"
        assert "password" not in user
        assert user["id"] == 1

    def test_create_invalid(self, service):
        with pytest.raises(ValidationError):
            service.create({"email": "not-an-email", "password": "password123"})

    def test_find_by_id_missing(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            service.find_by_id(7)
        err = exc_info.value
        assert err.status_code == 404
        assert err.path == "id"
        assert err.message == "Entity not found for ID: 7"
        assert err.code == ErrorCode.RESOURCE_NOT_FOUND

    def test_find_by_id_soft_deleted(self, service):
        user = service.create({"email": "test@email.com", "password": "password123"})
        service.delete(user["id"])
        with pytest.raises(NotFoundError):
            service.find_by_id(user["id"])

    def test_find_all_shapes_output(self, service):
        service.create({"email": "a@x.io", "password": "password123"})
        service.create({"email": "b@x.io", "password": "password123"})
        users = service.find_all()
        assert [u["email"] for u in users] == ["a@x.io", "b@x.io"]
        assert all("password" not in u for u in users)

    def test_update(self, service):
        user = service.create({"email": "test@email.com", "password": "password123"})
        updated = service.update(user["id"], {"username": "alice"})
        assert updated["username"] == "alice"
        assert "updated_at" in updated

    def test_update_empty(self, service):
        user = service.create({"email": "test@email.com", "password": "password123"})
        with pytest.raises(BadRequestError):
            service.update(user["id"], {})

    def test_delete_then_restore(self, service):
        user = service.create({"email": "test@email.com", "password": "password123"})
        deleted = service.delete(user["id"])
        assert deleted["is_deleted"] is True
        restored = service.restore(user["id"])
        assert restored["is_deleted"] is False
        assert service.find_by_id(user["id"])["email"] == "test@email.com"

    def test_restore_missing(self, service):
        with pytest.raises(NotFoundError):
            service.restore(99)
