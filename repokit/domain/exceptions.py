"""Data-access error taxonomy.

Every error raised by this package derives from RepositoryError and carries
the entity type and operation it was raised from, when known.

  - InvalidArgumentError: bad input caught before any I/O.
  - NotFoundError: for callers that require an entity to exist.  Lookups in
    this package never raise it; they report absence as None.
  - MultipleResultsFoundError: a ``single*`` lookup matched more than one row.
  - DataAccessFailure: opaque failure from the underlying data source.
  - DeserializationFailure: an identifier could not be decoded at the wire
    boundary.
  - TransactionFailure: commit or rollback failed; the transaction has
    already been rolled back when this is raised.
  - InvalidOperationError: the call is not valid in the current state
    (closed unit of work, nested transaction).
"""

from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """Base exception for data-access operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class InvalidArgumentError(RepositoryError, ValueError):
    """Raised for null or invalid input before the data source is touched."""


class NotFoundError(RepositoryError):
    """Raised when an entity that must exist does not."""


class MultipleResultsFoundError(RepositoryError):
    """Raised when a single-result query matches more than one entity."""

    def __init__(self, entity_type: str, operation: str) -> None:
        super().__init__(
            f"{operation} on {entity_type} matched more than one entity",
            entity_type=entity_type,
            operation=operation,
        )


class DataAccessFailure(RepositoryError):
    """Opaque failure from the data source.  Never retried internally."""


class DeserializationFailure(RepositoryError, ValueError):
    """Raised when a wire value cannot be decoded into an identifier."""

    def __init__(self, target_type: str, raw: Any, reason: str) -> None:
        super().__init__(
            f"Cannot convert {raw!r} to {target_type}: {reason}",
            entity_type=target_type,
            operation="deserialize",
        )
        self.target_type = target_type
        self.raw = raw
        self.reason = reason


class TransactionFailure(RepositoryError):
    """Commit or rollback failed.  The transaction has been rolled back."""


class InvalidOperationError(RepositoryError):
    """The operation is not valid in the current state."""
