"""Column type storing a strongly-typed identifier as its bare primitive."""

from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Integer, String, Uuid
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapper
from sqlalchemy.types import TypeDecorator, TypeEngine

from repokit.domain.exceptions import InvalidArgumentError
from repokit.domain.identifiers import IdKind, StronglyTypedId, identifier_kind


class IdentifierType(TypeDecorator):
    """Binds ``CustomerId(5)`` as ``5`` and loads ``5`` back as ``CustomerId(5)``.

    The column's SQL type follows the identifier family: INTEGER, BIGINT,
    UUID (CHAR(32) where the dialect has none) or VARCHAR.

        id: Mapped[CustomerId] = mapped_column(IdentifierType(CustomerId), primary_key=True)
    """

    impl = String
    cache_ok = True

    def __init__(self, id_type: type[StronglyTypedId[Any]], length: int | None = None) -> None:
        self.kind = identifier_kind(id_type)
        self.id_type = id_type
        if length is None and self.kind is IdKind.STRING:
            length = getattr(id_type, "max_length", None)
        self.length = length
        super().__init__()

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if self.kind is IdKind.INT32:
            impl: TypeEngine[Any] = Integer()
        elif self.kind is IdKind.INT64:
            impl = BigInteger()
        elif self.kind is IdKind.UUID:
            impl = Uuid(as_uuid=True)
        else:
            impl = String(self.length)
        return dialect.type_descriptor(impl)

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        if isinstance(value, StronglyTypedId):
            if type(value) is not self.id_type:
                raise InvalidArgumentError(
                    f"Cannot bind {type(value).__name__} to a {self.id_type.__name__} column",
                    entity_type=self.id_type.__name__,
                    operation="bind",
                )
            return value.value
        # bare primitives (e.g. in IN lists) are validated like any other input
        return self.id_type.from_value(value).value

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        return self.id_type.from_value(value)

    @property
    def python_type(self) -> type:
        return self.id_type

    def __repr__(self) -> str:
        return f"IdentifierType({self.id_type.__name__})"


def identifier_type_of(mapper: Mapper[Any]) -> tuple[str, type[StronglyTypedId[Any]]]:
    """Return ``(attribute name, identifier class)`` of a mapper's primary key."""
    name = mapper.class_.__name__
    if len(mapper.primary_key) != 1:
        raise InvalidArgumentError(
            f"{name} must have exactly one primary key column", entity_type=name, operation="repository"
        )
    column = mapper.primary_key[0]
    if not isinstance(column.type, IdentifierType):
        raise InvalidArgumentError(
            f"{name}.{column.key} must use IdentifierType", entity_type=name, operation="repository"
        )
    attribute = mapper.get_property_by_column(column).key
    return attribute, column.type.id_type
