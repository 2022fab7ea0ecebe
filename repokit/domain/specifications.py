"""Composable query specifications.

A specification wraps one boolean predicate over an entity type.  The
predicate is an engine-agnostic expression tree built from field
references:

    class ActiveCustomers(Specification[Customer]):
        def to_expression(self) -> Expression:
            return (field("status") == "active") & field("deleted_at").is_null()

    spec = ActiveCustomers() & ~InRegion("EU")

The same tree is evaluated in memory by ``is_satisfied_by`` and translated
into the data source's native filter by the persistence layer, so a
specification gives the same answer wherever it runs.

Evaluation is two-valued.  A comparison against a None field value is
False, except ``!=`` and ``not_in``, which hold for it, so ``~spec`` always
matches exactly the entities ``spec`` does not.  ``is_null`` / ``is_not_null``
match missing values explicitly.
"""

from __future__ import annotations

import operator
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from .exceptions import InvalidArgumentError

T = TypeVar("T")


class Operator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"


_SYMBOLS = {
    Operator.EQ: "==",
    Operator.NE: "!=",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}


# --- expression tree ---------------------------------------------------------


class _Combinable:
    """``&``, ``|`` and ``~`` on expression nodes."""

    def __and__(self, other: Any) -> Any:
        if isinstance(other, Specification):
            return NotImplemented
        return and_nodes(self, other)  # type: ignore[arg-type]

    def __or__(self, other: Any) -> Any:
        if isinstance(other, Specification):
            return NotImplemented
        return or_nodes(self, other)  # type: ignore[arg-type]

    def __invert__(self) -> Expression:
        return NotNode(self)  # type: ignore[arg-type]


@dataclass(frozen=True)
class Constant(_Combinable):
    value: bool


@dataclass(frozen=True)
class Comparison(_Combinable):
    field: str
    operator: Operator
    value: Any = None

    def __post_init__(self) -> None:
        if self.operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return
        if self.operator in (Operator.IN, Operator.NOT_IN, Operator.BETWEEN):
            values = self.value if isinstance(self.value, tuple) else (self.value,)
        else:
            values = (self.value,)
        if any(item is None for item in values):
            raise InvalidArgumentError(
                f"{self.operator.value} on {self.field!r} does not accept None; use is_null()",
                operation="field",
            )


@dataclass(frozen=True)
class AndNode(_Combinable):
    operands: tuple[Expression, ...]


@dataclass(frozen=True)
class OrNode(_Combinable):
    operands: tuple[Expression, ...]


@dataclass(frozen=True)
class NotNode(_Combinable):
    operand: Expression


Expression = Union[Constant, Comparison, AndNode, OrNode, NotNode]
_NODE_TYPES = (Constant, Comparison, AndNode, OrNode, NotNode)


def is_expression(candidate: Any) -> bool:
    return isinstance(candidate, _NODE_TYPES)


def _require_expression(candidate: Any, operation: str) -> Expression:
    if not is_expression(candidate):
        raise InvalidArgumentError(
            f"{operation} expects an expression node, got {type(candidate).__name__}",
            operation=operation,
        )
    return candidate


def and_nodes(*operands: Expression) -> Expression:
    """AND the operands, flattening nested AND nodes.  One operand is returned as-is."""
    flat: list[Expression] = []
    for node in operands:
        node = _require_expression(node, "and")
        flat.extend(node.operands if isinstance(node, AndNode) else (node,))
    if not flat:
        raise InvalidArgumentError("Cannot AND zero expressions", operation="and")
    return flat[0] if len(flat) == 1 else AndNode(tuple(flat))


def or_nodes(*operands: Expression) -> Expression:
    """OR the operands, flattening nested OR nodes.  One operand is returned as-is."""
    flat: list[Expression] = []
    for node in operands:
        node = _require_expression(node, "or")
        flat.extend(node.operands if isinstance(node, OrNode) else (node,))
    if not flat:
        raise InvalidArgumentError("Cannot OR zero expressions", operation="or")
    return flat[0] if len(flat) == 1 else OrNode(tuple(flat))


class FieldRef:
    """Reference to an entity attribute; comparisons build Comparison nodes."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise InvalidArgumentError("Field name must be a non-empty string", operation="field")
        self.name = name.strip()

    def _compare(self, op: Operator, value: Any = None) -> Comparison:
        return Comparison(self.name, op, value)

    def __eq__(self, value: Any) -> Comparison:  # type: ignore[override]
        return self.is_null() if value is None else self._compare(Operator.EQ, value)

    def __ne__(self, value: Any) -> Comparison:  # type: ignore[override]
        return self.is_not_null() if value is None else self._compare(Operator.NE, value)

    __hash__ = None  # type: ignore[assignment]

    def __gt__(self, value: Any) -> Comparison:
        return self._compare(Operator.GT, value)

    def __ge__(self, value: Any) -> Comparison:
        return self._compare(Operator.GTE, value)

    def __lt__(self, value: Any) -> Comparison:
        return self._compare(Operator.LT, value)

    def __le__(self, value: Any) -> Comparison:
        return self._compare(Operator.LTE, value)

    def eq(self, value: Any) -> Comparison:
        return self == value

    def ne(self, value: Any) -> Comparison:
        return self != value

    def in_(self, values: Iterable[Any]) -> Comparison:
        return self._compare(Operator.IN, _as_tuple(values, "in_"))

    def not_in(self, values: Iterable[Any]) -> Comparison:
        return self._compare(Operator.NOT_IN, _as_tuple(values, "not_in"))

    def contains(self, fragment: str) -> Comparison:
        return self._compare(Operator.CONTAINS, fragment)

    def starts_with(self, prefix: str) -> Comparison:
        return self._compare(Operator.STARTS_WITH, prefix)

    def ends_with(self, suffix: str) -> Comparison:
        return self._compare(Operator.ENDS_WITH, suffix)

    def is_null(self) -> Comparison:
        return self._compare(Operator.IS_NULL)

    def is_not_null(self) -> Comparison:
        return self._compare(Operator.IS_NOT_NULL)

    def between(self, low: Any, high: Any) -> Comparison:
        return self._compare(Operator.BETWEEN, (low, high))

    def __repr__(self) -> str:
        return f"field({self.name!r})"


def field(name: str) -> FieldRef:
    return FieldRef(name)


def _as_tuple(values: Iterable[Any], operation: str) -> tuple[Any, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise InvalidArgumentError(f"{operation} expects an iterable of values", operation=operation)
    return tuple(values)


# --- in-memory evaluation ------------------------------------------------------

# Two-valued: a comparison against a missing (None) field value is False,
# except NE and NOT_IN, which hold for it.  NOT is always the complement.


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        if actual is None:
            return False
        try:
            return op(actual, expected)
        except TypeError:
            raise InvalidArgumentError(
                f"Cannot compare {type(actual).__name__} with {type(expected).__name__}",
                operation="evaluate",
            ) from None

    return compare


def _text(op: Callable[[str, str], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        if actual is None:
            return False
        return op(str(actual), str(expected))

    return compare


def _between(actual: Any, bounds: tuple[Any, Any]) -> bool:
    low, high = bounds
    return _ordered(operator.ge)(actual, low) and _ordered(operator.le)(actual, high)


_EVALUATORS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.EQ: operator.eq,
    Operator.NE: operator.ne,
    Operator.GT: _ordered(operator.gt),
    Operator.GTE: _ordered(operator.ge),
    Operator.LT: _ordered(operator.lt),
    Operator.LTE: _ordered(operator.le),
    Operator.IN: lambda actual, expected: actual is not None and actual in expected,
    Operator.NOT_IN: lambda actual, expected: actual is None or actual not in expected,
    Operator.CONTAINS: _text(lambda actual, expected: expected in actual),
    Operator.STARTS_WITH: _text(str.startswith),
    Operator.ENDS_WITH: _text(str.endswith),
    Operator.IS_NULL: lambda actual, _: actual is None,
    Operator.IS_NOT_NULL: lambda actual, _: actual is not None,
    Operator.BETWEEN: _between,
}


def _resolve(entity: Any, name: str) -> Any:
    try:
        return getattr(entity, name)
    except AttributeError:
        raise InvalidArgumentError(
            f"{type(entity).__name__} has no field {name!r}",
            entity_type=type(entity).__name__,
            operation="evaluate",
        ) from None


def evaluate(expression: Expression, entity: Any) -> bool:
    """Evaluate ``expression`` against ``entity``.  AND and OR short-circuit."""
    if isinstance(expression, Constant):
        return expression.value
    if isinstance(expression, Comparison):
        actual = _resolve(entity, expression.field)
        return bool(_EVALUATORS[expression.operator](actual, expression.value))
    if isinstance(expression, AndNode):
        return all(evaluate(node, entity) for node in expression.operands)
    if isinstance(expression, OrNode):
        return any(evaluate(node, entity) for node in expression.operands)
    if isinstance(expression, NotNode):
        return not evaluate(expression.operand, entity)
    raise InvalidArgumentError(f"Unsupported expression node {type(expression).__name__}", operation="evaluate")


def describe(expression: Expression) -> str:
    """Readable rendering of an expression, for logs and error messages."""
    if isinstance(expression, Constant):
        return "TRUE" if expression.value else "FALSE"
    if isinstance(expression, Comparison):
        op = expression.operator
        if op in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return f"{expression.field} {op.value}"
        if op is Operator.BETWEEN:
            low, high = expression.value
            return f"{expression.field} between {low!r} and {high!r}"
        return f"{expression.field} {_SYMBOLS.get(op, op.value)} {expression.value!r}"
    if isinstance(expression, AndNode):
        return "(" + " AND ".join(describe(node) for node in expression.operands) + ")"
    if isinstance(expression, OrNode):
        return "(" + " OR ".join(describe(node) for node in expression.operands) + ")"
    if isinstance(expression, NotNode):
        return f"NOT {describe(expression.operand)}"
    raise InvalidArgumentError(f"Unsupported expression node {type(expression).__name__}", operation="describe")


# --- specifications --------------------------------------------------------------


class Specification(ABC, Generic[T]):
    """A named, immutable predicate over entities of type T.

    Specifications compose with other specifications and with bare
    expression nodes; ``Active() & (field("price") > 10)`` and
    ``(field("price") > 10) & Active()`` build the same predicate.
    """

    @abstractmethod
    def to_expression(self) -> Expression:
        """Return the predicate as an expression tree."""

    def is_satisfied_by(self, entity: T) -> bool:
        return evaluate(self.to_expression(), entity)

    def and_(self, other: Criteria) -> Specification[T]:
        return AndSpecification(self, other)

    def or_(self, other: Criteria) -> Specification[T]:
        return OrSpecification(self, other)

    def not_(self) -> Specification[T]:
        return NotSpecification(self)

    def __and__(self, other: Criteria) -> Specification[T]:
        return self.and_(other)

    def __rand__(self, other: Criteria) -> Specification[T]:
        return AndSpecification(other, self)

    def __or__(self, other: Criteria) -> Specification[T]:
        return self.or_(other)

    def __ror__(self, other: Criteria) -> Specification[T]:
        return OrSpecification(other, self)

    def __invert__(self) -> Specification[T]:
        return self.not_()

    def describe(self) -> str:
        return describe(self.to_expression())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"

    @staticmethod
    def true() -> Specification[Any]:
        return ExpressionSpecification(Constant(True))

    @staticmethod
    def false() -> Specification[Any]:
        return ExpressionSpecification(Constant(False))


def as_specification(candidate: Any, operation: str = "specification") -> Specification[Any]:
    """Return ``candidate`` as a Specification, wrapping bare expression nodes."""
    if isinstance(candidate, Specification):
        return candidate
    if is_expression(candidate):
        return ExpressionSpecification(candidate)
    raise InvalidArgumentError(
        f"{operation} expects a Specification or expression, got {type(candidate).__name__}",
        operation=operation,
    )


class ExpressionSpecification(Specification[T]):
    """Specification around an ad-hoc expression."""

    def __init__(self, expression: Expression) -> None:
        self._expression = _require_expression(expression, "ExpressionSpecification")

    def to_expression(self) -> Expression:
        return self._expression


class AndSpecification(Specification[T]):
    def __init__(self, *specifications: Criteria) -> None:
        if not specifications:
            raise InvalidArgumentError("AndSpecification needs at least one specification", operation="and")
        self.specifications = tuple(as_specification(s, "and") for s in specifications)

    def to_expression(self) -> Expression:
        return and_nodes(*(s.to_expression() for s in self.specifications))


class OrSpecification(Specification[T]):
    def __init__(self, *specifications: Criteria) -> None:
        if not specifications:
            raise InvalidArgumentError("OrSpecification needs at least one specification", operation="or")
        self.specifications = tuple(as_specification(s, "or") for s in specifications)

    def to_expression(self) -> Expression:
        return or_nodes(*(s.to_expression() for s in self.specifications))


class NotSpecification(Specification[T]):
    def __init__(self, specification: Criteria) -> None:
        self.specification = as_specification(specification, "not")

    def to_expression(self) -> Expression:
        return NotNode(self.specification.to_expression())


def all_of(*specifications: Criteria) -> Specification[T]:
    """AND together one or more specifications.  A single one is returned unchanged."""
    if not specifications:
        raise InvalidArgumentError("all_of needs at least one specification", operation="all_of")
    if len(specifications) == 1:
        return as_specification(specifications[0], "all_of")
    return AndSpecification(*specifications)


def any_of(*specifications: Criteria) -> Specification[T]:
    """OR together one or more specifications.  A single one is returned unchanged."""
    if not specifications:
        raise InvalidArgumentError("any_of needs at least one specification", operation="any_of")
    if len(specifications) == 1:
        return as_specification(specifications[0], "any_of")
    return OrSpecification(*specifications)


Criteria = Union[Specification[Any], Expression]


def as_expression(criteria: Any) -> Expression:
    """Normalise a Specification or expression node into an expression.

    Plain callables are rejected: they cannot be pushed down to a data source.
    """
    if isinstance(criteria, Specification):
        return criteria.to_expression()
    if is_expression(criteria):
        return criteria
    raise InvalidArgumentError(
        f"Expected a Specification or expression, got {type(criteria).__name__}",
        operation="criteria",
    )
