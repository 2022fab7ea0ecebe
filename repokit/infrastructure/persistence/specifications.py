"""Translate specification expression trees into SQLAlchemy filters.

Comparisons on nullable columns are guarded with IS NULL / IS NOT NULL so
every clause is TRUE or FALSE, never NULL, and NOT yields the complement.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import and_, false, inspect, not_, or_, true
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.elements import ColumnElement

from repokit.domain.exceptions import InvalidArgumentError
from repokit.domain.identifiers import StronglyTypedId
from repokit.domain.paging import SortCriteria, SortDirection
from repokit.domain.specifications import (
    AndNode,
    Comparison,
    Constant,
    Expression,
    NotNode,
    Operator,
    OrNode,
)

from .types import IdentifierType


def _column(model: type, name: str) -> InstrumentedAttribute[Any]:
    mapper = inspect(model)
    if name not in mapper.column_attrs:
        raise InvalidArgumentError(
            f"{model.__name__} has no column {name!r}",
            entity_type=model.__name__,
            operation="translate",
        )
    return getattr(model, name)


def _check_identifier(column: InstrumentedAttribute[Any], value: Any) -> Any:
    """Reject values of the wrong identifier type before they reach the driver."""
    column_type = column.expression.type
    if not isinstance(column_type, IdentifierType) or value is None:
        return value
    id_type = column_type.id_type
    if type(value) is id_type:
        return value
    if isinstance(value, StronglyTypedId):
        raise InvalidArgumentError(
            f"Cannot compare {id_type.__name__} column with {type(value).__name__}",
            entity_type=id_type.__name__,
            operation="translate",
        )
    return id_type.from_value(value)


def _comparison(model: type, node: Comparison) -> ColumnElement[bool]:
    column = _column(model, node.field)
    op = node.operator
    if op is Operator.IS_NULL:
        return column.is_(None)
    if op is Operator.IS_NOT_NULL:
        return column.is_not(None)
    clause = _compare(model, column, op, node.value)
    if not getattr(column.expression, "nullable", True):
        return clause
    # NULL never reaches NOT: NE and NOT_IN match missing values, everything
    # else rejects them, exactly as in-memory evaluation does.
    if op in (Operator.NE, Operator.NOT_IN):
        return or_(column.is_(None), clause)
    return and_(column.is_not(None), clause)


def _compare(model: type, column: InstrumentedAttribute[Any], op: Operator, value: Any) -> ColumnElement[bool]:
    if op in (Operator.IN, Operator.NOT_IN):
        values = [_check_identifier(column, item) for item in value]
        return column.in_(values) if op is Operator.IN else column.not_in(values)
    if op is Operator.BETWEEN:
        low, high = value
        return column.between(_check_identifier(column, low), _check_identifier(column, high))
    if op is Operator.CONTAINS:
        return column.contains(value, autoescape=True)
    if op is Operator.STARTS_WITH:
        return column.startswith(value, autoescape=True)
    if op is Operator.ENDS_WITH:
        return column.endswith(value, autoescape=True)

    value = _check_identifier(column, value)
    if op is Operator.EQ:
        return column == value
    if op is Operator.NE:
        return column != value
    if op is Operator.GT:
        return column > value
    if op is Operator.GTE:
        return column >= value
    if op is Operator.LT:
        return column < value
    if op is Operator.LTE:
        return column <= value
    raise InvalidArgumentError(f"Unsupported operator {op.value}", entity_type=model.__name__, operation="translate")


def to_sql(model: type, expression: Expression) -> ColumnElement[bool]:
    """Return a WHERE clause for ``expression`` against the mapped ``model``."""
    if isinstance(expression, Constant):
        return true() if expression.value else false()
    if isinstance(expression, Comparison):
        return _comparison(model, expression)
    if isinstance(expression, AndNode):
        return and_(*(to_sql(model, node) for node in expression.operands))
    if isinstance(expression, OrNode):
        return or_(*(to_sql(model, node) for node in expression.operands))
    if isinstance(expression, NotNode):
        return not_(to_sql(model, expression.operand))
    raise InvalidArgumentError(
        f"Unsupported expression node {type(expression).__name__}",
        entity_type=model.__name__,
        operation="translate",
    )


def order_clauses(model: type, order_by: list[SortCriteria] | tuple[SortCriteria, ...]) -> list[Any]:
    clauses = []
    for criteria in order_by:
        column = _column(model, criteria.field)
        clauses.append(column.desc() if criteria.direction is SortDirection.DESC else column.asc())
    return clauses
