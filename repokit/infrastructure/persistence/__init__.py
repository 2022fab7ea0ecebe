"""Persistence package.

Exports the SQLAlchemy repository implementations, the unit of work and its
request-scoped factory, and the identifier column type used by mapped
entities.
"""

from repokit.infrastructure.persistence.repositories import SqlReadOnlyRepository, SqlRepository
from repokit.infrastructure.persistence.specifications import order_clauses, to_sql
from repokit.infrastructure.persistence.types import IdentifierType, identifier_type_of
from repokit.infrastructure.persistence.unit_of_work import (
    SqlTransaction,
    SqlUnitOfWork,
    get_unit_of_work,
)

__all__ = [
    "IdentifierType",
    "SqlReadOnlyRepository",
    "SqlRepository",
    "SqlTransaction",
    "SqlUnitOfWork",
    "get_unit_of_work",
    "identifier_type_of",
    "order_clauses",
    "to_sql",
]
