"""
Serialized access to a single book.

Every write that touches a book's copy ledger runs through
``SerializedAccess.run(book_id, mutation)``. Two mechanisms back it:

1. an in-process mutex per book id, so writers inside one server never
   interleave on the same book
2. the optimistic ``version`` column on ``books``, so a writer in another
   process that committed first makes our flush fail with StaleDataError;
   the whole mutation is then retried against a fresh read, up to the
   configured number of attempts

Writes to different books never wait on each other.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .errors import StoreUnavailableError, TransactionConflictError
from .schema import Book

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SerializedAccess:
    """Runs book mutations one at a time per book, with optimistic retry."""

    def __init__(self, session_factory: sessionmaker, max_retries: int):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._session_factory = session_factory
        self.max_retries = max_retries
        # book id -> (lock, threads holding or waiting on it)
        self._locks: dict[str, tuple[threading.Lock, int]] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _holding(self, book_id: str) -> Iterator[None]:
        """Hold the book's mutex; the entry is dropped once nobody needs it."""
        with self._registry_lock:
            lock, users = self._locks.get(book_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[book_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._registry_lock:
                _, users = self._locks[book_id]
                if users == 1:
                    del self._locks[book_id]
                else:
                    self._locks[book_id] = (lock, users - 1)

    @property
    def tracked_books(self) -> int:
        """Books with a writer in flight or waiting."""
        with self._registry_lock:
            return len(self._locks)

    def run(self, book_id: str, mutation: Callable[[Session, Book | None], T]) -> T:
        """
        Apply ``mutation`` to a freshly read book and commit it atomically.

        The mutation receives the open session and the book row (None if the
        book does not exist). Whatever it raises rolls the session back and
        propagates unchanged; whatever it returns is returned after commit.

        Raises:
            TransactionConflictError: If every attempt lost to a concurrent
                writer
            StoreUnavailableError: If the database could not be reached
        """
        with self._holding(book_id):
            for attempt in range(1, self.max_retries + 1):
                session = self._session_factory()
                try:
                    book = session.get(Book, book_id)
                    result = mutation(session, book)
                    session.commit()
                    return result
                except StaleDataError:
                    session.rollback()
                    logger.warning(
                        "Book %s changed underneath attempt %d/%d, retrying",
                        book_id,
                        attempt,
                        self.max_retries,
                    )
                except OperationalError as e:
                    session.rollback()
                    raise StoreUnavailableError(
                        f"Database unavailable while updating book {book_id}: {e.orig}"
                    ) from e
                except Exception:
                    session.rollback()
                    raise
                finally:
                    session.close()

        raise TransactionConflictError(book_id, self.max_retries)
