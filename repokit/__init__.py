"""Generic data-access layer: strongly-typed identifiers, composable
specifications, paged results, repositories and a unit of work over async
SQLAlchemy.
"""

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
from repokit.domain.identifier_converters import IdentifierConverters, identifier_converters
from repokit.domain.identifiers import GuidId, IntId, LongId, StringId, StronglyTypedId
from repokit.domain.paging import PagedResult, SortCriteria, SortDirection
from repokit.domain.repositories import (
    ReadOnlyRepository,
    Repository,
    Transaction,
    UnitOfWork,
    UnitOfWorkState,
)
from repokit.domain.specifications import (
    ExpressionSpecification,
    Specification,
    all_of,
    any_of,
    as_specification,
    field,
)

__all__ = [
    "DataAccessFailure",
    "DeserializationFailure",
    "ExpressionSpecification",
    "GuidId",
    "IdentifierConverters",
    "IntId",
    "InvalidArgumentError",
    "InvalidOperationError",
    "LongId",
    "MultipleResultsFoundError",
    "NotFoundError",
    "PagedResult",
    "ReadOnlyRepository",
    "Repository",
    "RepositoryError",
    "SortCriteria",
    "SortDirection",
    "Specification",
    "StringId",
    "StronglyTypedId",
    "Transaction",
    "TransactionFailure",
    "UnitOfWork",
    "UnitOfWorkState",
    "all_of",
    "any_of",
    "as_specification",
    "field",
    "identifier_converters",
]
