"""
Data-Transfer-Object layer.

A DTO takes unvalidated input (usually an HTTP request body), validates it
against a pydantic schema and produces a clean dict for the rest of the stack.
The create and update schemas are derived from the full schema by dropping
the fields the framework manages itself (`AutoFields`).
Field validators declared on the full schema are carried over for the fields
that remain; model validators apply to the full schema only.

    user_dto = DTO(
        UserSchema,
        AutoFields(id_field="id", created_at_field="created_at",
                   updated_at_field="updated_at", is_deleted_field="is_deleted"),
        hidden_fields=("password",),
    )
    user_dto.to_create_dto({"email": "user@example.com", "password": "password123"})
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Iterable, Mapping, Optional

from pydantic import BaseModel, Field, create_model, field_validator
from pydantic.fields import FieldInfo

from qcore.core.errors import BadRequestError, SchemaConfigError


@dataclass(frozen=True)
class AutoFields:
    """Names of the fields managed by the framework rather than the client."""
    id_field: str = "id"
    created_at_field: Optional[str] = None
    updated_at_field: Optional[str] = None
    is_deleted_field: Optional[str] = None

    def declared(self) -> list[str]:
        return [
            name
            for name in (
                self.id_field,
                self.created_at_field,
                self.updated_at_field,
                self.is_deleted_field,
            )
            if name
        ]


def _optional_field(info: FieldInfo) -> tuple[Any, FieldInfo]:
    """
    Same type and constraints, but may be omitted. The None default is never
    validated, while an explicit null is still checked against the type.
    """
    annotation = info.annotation
    if info.metadata:
        annotation = Annotated[(annotation, *info.metadata)]
    return (
        annotation,
        Field(default=None, alias=info.alias, description=info.description),
    )


def _rebind_field_validator(decorator: Any, fields: tuple[str, ...]) -> Any:
    """
    Re-declare a field validator of the full schema for a derived schema.
    `decorator.func` is already bound to the full schema.
    """
    func = decorator.func
    mode = decorator.info.mode
    takes_info = len(inspect.signature(func).parameters) >= (3 if mode == "wrap" else 2)

    if mode == "wrap":
        if takes_info:
            def validate(cls, value, handler, info):
                return func(value, handler, info)
        else:
            def validate(cls, value, handler):
                return func(value, handler)
    elif takes_info:
        def validate(cls, value, info):
            return func(value, info)
    else:
        def validate(cls, value):
            return func(value)

    validate.__name__ = decorator.cls_var_name
    return field_validator(*fields, mode=mode, check_fields=False)(validate)


def _field_validators(schema: type[BaseModel], kept: Iterable[str]) -> dict[str, Any]:
    """Field validators of `schema` restricted to the fields in `kept`."""
    kept = set(kept)
    validators = {}
    for name, decorator in schema.__pydantic_decorators__.field_validators.items():
        declared = decorator.info.fields
        fields = tuple(f for f in declared if f in kept) if "*" not in declared else ("*",)
        if fields:
            validators[name] = _rebind_field_validator(decorator, fields)
    return validators


class DTO:
    def __init__(
        self,
        schema: type[BaseModel],
        auto_fields: AutoFields,
        hidden_fields: Iterable[str] = (),
    ):
        missing = [f for f in auto_fields.declared() if f not in schema.model_fields]
        if missing:
            raise SchemaConfigError(
                f"Auto fields {missing} are not defined on schema {schema.__name__}"
            )

        self.schema = schema
        self.auto_fields = auto_fields
        self.hidden_fields = frozenset(hidden_fields)
        self.create_schema = self._build_create_schema()
        self.update_schema = self._build_update_schema()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def to_create_dto(self, data: Any) -> dict[str, Any]:
        """Validate against the create schema. Raises pydantic.ValidationError."""
        return self.create_schema.model_validate(data).model_dump()

    def to_update_dto(self, data: Any) -> dict[str, Any]:
        """
        Validate a partial update. Only the supplied fields are returned, plus
        the updated-at timestamp when the schema has one.
        """
        if data is None or (isinstance(data, Mapping) and len(data) == 0):
            raise BadRequestError("Must update at least one field", path="body")

        payload = dict(data) if isinstance(data, Mapping) else data
        updated_at = self.auto_fields.updated_at_field
        if updated_at and isinstance(payload, dict):
            payload[updated_at] = datetime.now(timezone.utc)

        validated = self.update_schema.model_validate(payload)
        return validated.model_dump(exclude_unset=True)

    def to_json(self, entity: Optional[Mapping[str, Any]]) -> Optional[dict[str, Any]]:
        """Representation returned to clients. Override to reshape records."""
        if entity is None:
            return None
        if not self.hidden_fields:
            return dict(entity)
        return {k: v for k, v in entity.items() if k not in self.hidden_fields}

    # ------------------------------------------------------------------
    # Schema derivation
    # ------------------------------------------------------------------

    def _build_create_schema(self) -> type[BaseModel]:
        omitted = set(self.auto_fields.declared())
        fields = {
            name: (info.annotation, info)
            for name, info in self.schema.model_fields.items()
            if name not in omitted
        }
        return create_model(
            f"{self.schema.__name__}Create",
            __config__=self.schema.model_config,
            __doc__=f"Create schema for {self.schema.__name__}",
            __validators__=_field_validators(self.schema, fields),
            **fields,
        )

    def _build_update_schema(self) -> type[BaseModel]:
        omitted = {self.auto_fields.id_field, self.auto_fields.created_at_field}
        fields = {
            name: _optional_field(info)
            for name, info in self.schema.model_fields.items()
            if name not in omitted
        }
        return create_model(
            f"{self.schema.__name__}Update",
            __config__=self.schema.model_config,
            __doc__=f"Update schema for {self.schema.__name__}",
            __validators__=_field_validators(self.schema, fields),
            **fields,
        )

    @property
    def supports_soft_delete(self) -> bool:
        return bool(self.auto_fields.is_deleted_field)
