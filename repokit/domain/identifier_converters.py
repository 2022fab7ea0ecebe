"""Wire-format conversion for strongly-typed identifiers.

At API and document boundaries an identifier travels as its bare primitive
(``42``, ``"3f2a..."``), never as a wrapped object.  IdentifierConverters
resolves, per concrete identifier class, the primitive family it wraps and
builds a converter that validates the raw primitive with pydantic and then
constructs the identifier through its ``from_value``.

Converters are cached per identifier class.  Call ``register()`` at startup
for every identifier type the application exposes so that a misconfigured
type fails at registration rather than on the first request.

Identifier classes also plug into pydantic directly: a model field typed
``CustomerId`` validates from and serializes to the bare primitive.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Annotated, Any, Generic, Union

from pydantic import Strict, TypeAdapter, ValidationError
from pydantic_core import CoreSchema, core_schema

from .exceptions import DeserializationFailure, InvalidArgumentError
from .identifiers import IdKind, StronglyTypedId, TId, identifier_kind

logger = logging.getLogger(__name__)

Primitive = Union[int, str, uuid.UUID]

_PRIMITIVE_TYPES: dict[IdKind, Any] = {
    IdKind.INT32: Annotated[int, Strict()],
    IdKind.INT64: Annotated[int, Strict()],
    IdKind.UUID: uuid.UUID,
    IdKind.STRING: Annotated[str, Strict()],
}


def _primitive_core_schema(kind: IdKind) -> CoreSchema:
    if kind in (IdKind.INT32, IdKind.INT64):
        return core_schema.int_schema(strict=True)
    if kind is IdKind.UUID:
        return core_schema.uuid_schema()
    return core_schema.str_schema(strict=True)


class IdentifierConverter(Generic[TId]):
    """Encode/decode one concrete identifier class."""

    def __init__(self, id_type: type[TId], kind: IdKind) -> None:
        self.id_type = id_type
        self.kind = kind
        self._adapter: TypeAdapter[Any] = TypeAdapter(_PRIMITIVE_TYPES[kind])

    def encode(self, identifier: TId) -> Primitive:
        """Return the bare primitive for ``identifier``."""
        if type(identifier) is not self.id_type:
            raise InvalidArgumentError(
                f"Expected {self.id_type.__name__}, got {type(identifier).__name__}",
                entity_type=self.id_type.__name__,
                operation="encode",
            )
        return identifier.value

    def encode_json(self, identifier: TId) -> str:
        return self._adapter.dump_json(self.encode(identifier)).decode()

    def decode(self, raw: Any) -> TId:
        """Build the identifier from a raw primitive (already-parsed JSON)."""
        if raw is None:
            raise DeserializationFailure(self.id_type.__name__, raw, "value is null")
        try:
            primitive = self._adapter.validate_python(raw)
            return self.id_type.from_value(primitive)
        except (ValidationError, InvalidArgumentError) as exc:
            raise DeserializationFailure(self.id_type.__name__, raw, _reason(exc)) from exc

    def decode_json(self, text: str | bytes) -> TId:
        """Build the identifier from a JSON document holding the bare primitive."""
        try:
            primitive = self._adapter.validate_json(text)
        except ValidationError as exc:
            raise DeserializationFailure(self.id_type.__name__, text, _reason(exc)) from exc
        return self.decode(primitive)

    def core_schema(self) -> CoreSchema:
        """pydantic core schema: accept an instance or the bare primitive."""
        from_primitive = core_schema.no_info_after_validator_function(
            self.id_type.from_value, _primitive_core_schema(self.kind)
        )
        return core_schema.json_or_python_schema(
            json_schema=from_primitive,
            python_schema=core_schema.union_schema(
                [core_schema.is_instance_schema(self.id_type), from_primitive]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                self.encode,
                return_schema=_primitive_core_schema(self.kind),
            ),
        )


def _reason(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "; ".join(error["msg"] for error in exc.errors())
    return str(exc)


class IdentifierConverters:
    """Registry of converters keyed by identifier class.

    Safe under concurrent first use: a converter may be built twice by racing
    callers, but only one is kept and every caller receives that one.
    """

    def __init__(self) -> None:
        self._converters: dict[type, IdentifierConverter[Any]] = {}
        self._lock = threading.Lock()

    def register(self, *id_types: type[StronglyTypedId[Any]]) -> None:
        """Build converters eagerly.  Raises InvalidArgumentError for non-identifiers."""
        for id_type in id_types:
            self.converter_for(id_type)

    def converter_for(self, id_type: type[TId]) -> IdentifierConverter[TId]:
        converter = self._converters.get(id_type)
        if converter is not None:
            return converter
        built = IdentifierConverter(id_type, identifier_kind(id_type))
        with self._lock:
            converter = self._converters.setdefault(id_type, built)
        if converter is built:
            logger.debug("Registered identifier converter for %s (%s)", id_type.__name__, built.kind.value)
        return converter

    def encode(self, identifier: StronglyTypedId[Any]) -> Primitive:
        return self.converter_for(type(identifier)).encode(identifier)

    def encode_json(self, identifier: StronglyTypedId[Any]) -> str:
        return self.converter_for(type(identifier)).encode_json(identifier)

    def decode(self, id_type: type[TId], raw: Any) -> TId:
        return self.converter_for(id_type).decode(raw)

    def decode_json(self, id_type: type[TId], text: str | bytes) -> TId:
        return self.converter_for(id_type).decode_json(text)

    def __contains__(self, id_type: object) -> bool:
        return id_type in self._converters

    def __len__(self) -> int:
        return len(self._converters)


identifier_converters = IdentifierConverters()
