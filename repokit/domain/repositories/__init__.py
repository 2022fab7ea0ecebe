"""Domain repository interfaces.

All abstractions are defined here with abc.ABC and @abstractmethod.
Concrete implementations live in repokit/infrastructure/persistence/ and are
obtained from a unit of work.

Import from this package rather than individual modules.
"""

from .base import ReadOnlyRepository, Repository
from .unit_of_work import Transaction, UnitOfWork, UnitOfWorkState

__all__ = [
    "ReadOnlyRepository",
    "Repository",
    "Transaction",
    "UnitOfWork",
    "UnitOfWorkState",
]
