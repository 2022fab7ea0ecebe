"""Strongly-typed entity identifiers.

Each entity family declares its own identifier class by subclassing one of
the four primitive families:

    class CustomerId(GuidId): ...
    class InvoiceNumber(LongId): ...
    class CountryCode(StringId):
        max_length = 2

Two identifier classes backed by the same primitive are still distinct
types: CustomerId(u) never equals OrderId(u), and a static type checker
rejects passing one where the other is expected.

Concrete identifier classes register themselves at class-definition time
(see StronglyTypedId.__init_subclass__).  The registry is the explicit
type table that the serialization layer and the SQL column type consult to
find an identifier's primitive family and constructor.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema

from .exceptions import InvalidArgumentError

V = TypeVar("V", int, uuid.UUID, str)
TId = TypeVar("TId", bound="StronglyTypedId[Any]")

INT32_MAX = 2**31 - 1
INT64_MAX = 2**63 - 1

NIL_UUID = uuid.UUID(int=0)


class IdKind(str, Enum):
    """Primitive family an identifier wraps."""

    INT32 = "int32"
    INT64 = "int64"
    UUID = "uuid"
    STRING = "string"


# concrete identifier class -> primitive family
_IDENTIFIER_TYPES: dict[type, IdKind] = {}


def is_identifier_type(candidate: Any) -> bool:
    """True if ``candidate`` is a registered concrete identifier class."""
    return isinstance(candidate, type) and candidate in _IDENTIFIER_TYPES


def identifier_kind(id_type: type) -> IdKind:
    """Return the primitive family of a concrete identifier class."""
    try:
        return _IDENTIFIER_TYPES[id_type]
    except (KeyError, TypeError):
        name = getattr(id_type, "__name__", repr(id_type))
        raise InvalidArgumentError(
            f"{name} is not a concrete identifier type",
            entity_type=name,
            operation="identifier_kind",
        ) from None


def registered_identifier_types() -> list[type]:
    return list(_IDENTIFIER_TYPES)


@dataclass(frozen=True, eq=False)
class StronglyTypedId(Generic[V]):
    """Immutable nominal wrapper around a primitive identifier value.

    Do not subclass this directly; derive from IntId, LongId, GuidId or
    StringId.  Construction validates the primitive and raises
    InvalidArgumentError when it violates the family's rule.
    """

    value: V

    kind: ClassVar[IdKind]

    def __init_subclass__(cls, kind: IdKind | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if kind is not None:
            cls.kind = kind
            return
        if not hasattr(cls, "kind"):
            raise TypeError(
                f"{cls.__name__} must derive from IntId, LongId, GuidId or StringId"
            )
        _IDENTIFIER_TYPES[cls] = cls.kind

    def __post_init__(self) -> None:
        cls = type(self)
        if cls not in _IDENTIFIER_TYPES:
            raise TypeError(
                f"{cls.__name__} is an identifier family; subclass it to declare an identifier"
            )
        object.__setattr__(self, "value", cls._validate(self.value))

    @classmethod
    def _validate(cls, value: Any) -> V:
        raise NotImplementedError

    @classmethod
    def _invalid(cls, message: str) -> InvalidArgumentError:
        return InvalidArgumentError(message, entity_type=cls.__name__, operation="from_value")

    @classmethod
    def from_value(cls: type[TId], value: Any) -> TId:
        """Construct the identifier from its primitive, validating it."""
        return cls(value)

    @classmethod
    def try_from(cls: type[TId], value: Any) -> TId | None:
        """Like from_value, but returns None instead of raising."""
        try:
            return cls.from_value(value)
        except InvalidArgumentError:
            return None

    @classmethod
    def parse(cls: type[TId], text: str) -> TId:
        """Construct the identifier from its textual form."""
        if not isinstance(text, str):
            raise cls._invalid(f"{cls.__name__}.parse expects a string, got {type(text).__name__}")
        return cls.from_value(cls._parse_primitive(text))

    @classmethod
    def try_parse(cls: type[TId], text: str | None) -> TId | None:
        if text is None:
            return None
        try:
            return cls.parse(text)
        except InvalidArgumentError:
            return None

    @classmethod
    def _parse_primitive(cls, text: str) -> Any:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value == other.value  # type: ignore[attr-defined]

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self) -> int:
        return hash((type(self), self.value))

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        # Local import: the converter registry imports this module.
        from .identifier_converters import identifier_converters

        return identifier_converters.converter_for(cls).core_schema()


class _NumericId:
    """Range validation and ordering shared by the integer families."""

    min_value: ClassVar[int] = 1
    max_value: ClassVar[int]

    value: int

    @classmethod
    def _validate(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise cls._invalid(  # type: ignore[attr-defined]
                f"{cls.__name__} requires an integer, got {type(value).__name__}"
            )
        if not cls.min_value <= value <= cls.max_value:
            raise cls._invalid(  # type: ignore[attr-defined]
                f"{cls.__name__} must be between {cls.min_value} and {cls.max_value}, got {value}"
            )
        return value

    @classmethod
    def _parse_primitive(cls, text: str) -> int:
        try:
            return int(text.strip())
        except ValueError:
            raise cls._invalid(f"{text!r} is not a valid {cls.__name__}") from None  # type: ignore[attr-defined]

    @classmethod
    def min(cls: type[TId]) -> TId:
        return cls(cls.min_value)  # type: ignore[attr-defined]

    @classmethod
    def max(cls: type[TId]) -> TId:
        return cls(cls.max_value)  # type: ignore[attr-defined]

    def next(self: TId) -> TId:
        """Return the following identifier in sequence."""
        cls = type(self)
        if self.value >= cls.max_value:  # type: ignore[attr-defined]
            raise InvalidArgumentError(
                f"{cls.__name__} {self.value} has no successor",
                entity_type=cls.__name__,
                operation="next",
            )
        return cls(self.value + 1)

    def _same_type(self, other: object) -> bool:
        return type(other) is type(self)

    def __lt__(self, other: object) -> bool:
        if not self._same_type(other):
            return NotImplemented
        return self.value < other.value  # type: ignore[attr-defined]

    def __le__(self, other: object) -> bool:
        if not self._same_type(other):
            return NotImplemented
        return self.value <= other.value  # type: ignore[attr-defined]

    def __gt__(self, other: object) -> bool:
        if not self._same_type(other):
            return NotImplemented
        return self.value > other.value  # type: ignore[attr-defined]

    def __ge__(self, other: object) -> bool:
        if not self._same_type(other):
            return NotImplemented
        return self.value >= other.value  # type: ignore[attr-defined]

    def __int__(self) -> int:
        return self.value


class IntId(_NumericId, StronglyTypedId[int], kind=IdKind.INT32):
    """Identifier backed by a 32-bit signed integer (positive by default)."""

    max_value: ClassVar[int] = INT32_MAX


class LongId(_NumericId, StronglyTypedId[int], kind=IdKind.INT64):
    """Identifier backed by a 64-bit signed integer (positive by default)."""

    max_value: ClassVar[int] = INT64_MAX


class GuidId(StronglyTypedId[uuid.UUID], kind=IdKind.UUID):
    """Identifier backed by a UUID.

    The nil UUID is rejected by from_value; it is only reachable through
    empty(), which callers use to represent "no identifier yet".
    """

    @classmethod
    def _validate(cls, value: Any) -> uuid.UUID:
        if not isinstance(value, uuid.UUID):
            raise cls._invalid(f"{cls.__name__} requires a UUID, got {type(value).__name__}")
        if value == NIL_UUID:
            raise cls._invalid(f"{cls.__name__} cannot be the nil UUID; use {cls.__name__}.empty()")
        return value

    @classmethod
    def _parse_primitive(cls, text: str) -> uuid.UUID:
        try:
            return uuid.UUID(text.strip())
        except ValueError:
            raise cls._invalid(f"{text!r} is not a valid {cls.__name__}") from None

    @classmethod
    def new(cls: type[TId]) -> TId:
        return cls(uuid.uuid4())

    @classmethod
    def empty(cls: type[TId]) -> TId:
        if cls not in _IDENTIFIER_TYPES:
            raise TypeError(f"{cls.__name__} is an identifier family; subclass it")
        instance = object.__new__(cls)
        object.__setattr__(instance, "value", NIL_UUID)
        return instance

    @property
    def is_empty(self) -> bool:
        return self.value == NIL_UUID


class StringId(StronglyTypedId[str], kind=IdKind.STRING):
    """Identifier backed by a non-blank string.

    Surrounding whitespace is trimmed at construction.  Set ``max_length``
    on a subclass to bound the trimmed length.
    """

    max_length: ClassVar[int | None] = None

    @classmethod
    def _validate(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise cls._invalid(f"{cls.__name__} requires a string, got {type(value).__name__}")
        trimmed = value.strip()
        if not trimmed:
            raise cls._invalid(f"{cls.__name__} cannot be empty or whitespace")
        if cls.max_length is not None and len(trimmed) > cls.max_length:
            raise cls._invalid(
                f"{cls.__name__} cannot exceed {cls.max_length} characters, got {len(trimmed)}"
            )
        return trimmed

    @classmethod
    def _parse_primitive(cls, text: str) -> str:
        return text

    def __len__(self) -> int:
        return len(self.value)

    def upper(self: TId) -> TId:
        return type(self)(self.value.upper())

    def lower(self: TId) -> TId:
        return type(self)(self.value.lower())

    def starts_with(self, prefix: str) -> bool:
        return self.value.casefold().startswith(prefix.casefold())

    def ends_with(self, suffix: str) -> bool:
        return self.value.casefold().endswith(suffix.casefold())

    def contains(self, fragment: str) -> bool:
        return fragment.casefold() in self.value.casefold()
