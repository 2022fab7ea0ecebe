"""Concrete SQLAlchemy repository implementations."""

from .read_only import SqlReadOnlyRepository
from .repository import SqlRepository

__all__ = [
    "SqlReadOnlyRepository",
    "SqlRepository",
]
