"""Tests for repokit/infrastructure/persistence/specifications.py."""

import pytest
from sqlalchemy.dialects import sqlite
from sqlalchemy.sql.elements import False_, True_

from repokit.domain.exceptions import InvalidArgumentError
from repokit.domain.paging import SortCriteria, SortDirection
from repokit.domain.specifications import Constant, Specification, field
from repokit.infrastructure.persistence.specifications import order_clauses, to_sql
from sample_entities import OrderId, Widget, WidgetId


def _sql(clause) -> str:
    return str(clause.compile(dialect=sqlite.dialect()))


class Expensive(Specification):
    def to_expression(self):
        return field("price") > 100


def test_comparison_translates_to_column_operator():
    assert _sql(to_sql(Widget, field("price") > 100)) == "widgets.price > ?"


def test_specification_and_composition():
    clause = to_sql(Widget, (Expensive() & ~(field("name") == "x")).to_expression())
    assert _sql(clause) == "widgets.price > ? AND widgets.name != ?"


def test_or_translates_to_sql_or():
    clause = to_sql(Widget, (field("price") < 5) | field("category").is_null())
    assert _sql(clause) == "widgets.price < ? OR widgets.category IS NULL"


def test_in_and_between():
    assert "IN" in _sql(to_sql(Widget, field("price").in_([1, 2])))
    assert _sql(to_sql(Widget, field("price").between(1, 5))) == "widgets.price BETWEEN ? AND ?"


def test_like_operators_escape_wildcards():
    sql = _sql(to_sql(Widget, field("name").contains("50%")))
    assert "LIKE" in sql
    assert "ESCAPE" in sql


def test_constants_translate_to_true_and_false():
    assert isinstance(to_sql(Widget, Constant(True)), True_)
    assert isinstance(to_sql(Widget, Constant(False)), False_)


def test_unknown_field_rejected():
    with pytest.raises(InvalidArgumentError) as exc_info:
        to_sql(Widget, field("colour") == "red")
    assert exc_info.value.entity_type == "Widget"


def test_identifier_column_rejects_other_identifier_type():
    with pytest.raises(InvalidArgumentError):
        to_sql(Widget, field("id") == OrderId(1))


def test_identifier_column_accepts_identifier_and_primitive():
    to_sql(Widget, field("id") == WidgetId(1))
    to_sql(Widget, field("id").in_([1, WidgetId(2)]))


def test_identifier_column_validates_primitive():
    with pytest.raises(InvalidArgumentError):
        to_sql(Widget, field("id") == 0)


def test_order_clauses():
    clauses = order_clauses(Widget, [SortCriteria(field="price", direction=SortDirection.DESC)])
    assert _sql(clauses[0]) == "widgets.price DESC"


def test_order_clauses_reject_unknown_field():
    with pytest.raises(InvalidArgumentError):
        order_clauses(Widget, [SortCriteria(field="colour")])


def test_nullable_column_comparisons_are_two_valued():
    assert _sql(to_sql(Widget, field("category") == "x")) == (
        "widgets.category IS NOT NULL AND widgets.category = ?"
    )
    assert _sql(to_sql(Widget, field("category") != "x")) == (
        "widgets.category IS NULL OR widgets.category != ?"
    )


def test_non_nullable_column_comparison_is_not_guarded():
    assert _sql(to_sql(Widget, field("name") == "x")) == "widgets.name = ?"
