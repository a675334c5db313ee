"""
Exceptions raised by the persistence layer.

Two families live here. ``RepositoryException`` and its subclasses describe
requests the store could not satisfy (missing rows, duplicates, circulation
preconditions). ``StoreUnavailableError`` means the store itself could not be
reached or kept losing the race for a row; callers retry those, the
circulation desk never turns them into result values.
"""

from ..models.results import FailureReason


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""


class DuplicateError(RepositoryException):
    """Raised when attempting to create a duplicate entity."""


class CirculationError(RepositoryException):
    """A circulation precondition failed; the transaction was rolled back."""

    def __init__(self, reason: FailureReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


class StoreUnavailableError(RepositoryException):
    """The database could not be reached or refused the operation."""


class TransactionConflictError(StoreUnavailableError):
    """Optimistic retries on a book were exhausted by concurrent writers."""

    def __init__(self, book_id: str, attempts: int):
        self.book_id = book_id
        self.attempts = attempts
        super().__init__(
            f"Book {book_id} was modified concurrently; gave up after {attempts} attempts"
        )
