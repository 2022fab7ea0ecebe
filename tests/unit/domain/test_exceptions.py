"""Tests for repokit/domain/exceptions.py."""

import pytest

from repokit.domain.exceptions import (
    DataAccessFailure,
    DeserializationFailure,
    InvalidArgumentError,
    InvalidOperationError,
    MultipleResultsFoundError,
    NotFoundError,
    RepositoryError,
    TransactionFailure,
)


@pytest.mark.parametrize(
    "error_type",
    [
        DataAccessFailure,
        InvalidArgumentError,
        InvalidOperationError,
        NotFoundError,
        TransactionFailure,
    ],
)
def test_errors_share_the_repository_base(error_type):
    error = error_type("boom", entity_type="Widget", operation="get")
    assert isinstance(error, RepositoryError)
    assert error.entity_type == "Widget"
    assert error.operation == "get"
    assert str(error) == "boom"


def test_multiple_results_message_names_entity_and_operation():
    error = MultipleResultsFoundError("Widget", "single_or_default")
    assert str(error) == "single_or_default on Widget matched more than one entity"
    assert error.entity_type == "Widget"


def test_deserialization_failure_carries_details():
    error = DeserializationFailure("WidgetId", "abc", "not an integer")
    assert error.target_type == "WidgetId"
    assert error.raw == "abc"
    assert error.reason == "not an integer"
    assert error.operation == "deserialize"
    assert isinstance(error, ValueError)
