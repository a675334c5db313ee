"""
Read-only projections over a book's copy ledger.

The ledger of a book is its two counters plus the list of active borrow
records. These helpers accept anything shaped like a book (the pydantic model
or the SQLAlchemy row) and never change it.
"""

from collections import Counter
from typing import Any

LOW_STOCK_THRESHOLD = 10

# Inventory analytics flag a title once it drops to either limit
ANALYTICS_LOW_STOCK_COPIES = 3
ANALYTICS_LOW_STOCK_RATIO = 0.3


class LedgerInvariantError(RuntimeError):
    """A book's counters disagree with its loans. Always a programming error."""

    def __init__(self, book_id: str | None, detail: str):
        self.book_id = book_id
        super().__init__(f"Ledger invariant violated for book {book_id}: {detail}")


def available_count(book: Any) -> int:
    return book.available_copies


def active_borrow_count(book: Any) -> int:
    return len(book.borrow_records)


def is_borrowed_by(book: Any, user_id: str) -> bool:
    return any(record.user_id == user_id for record in book.borrow_records)


def find_borrow_record(book: Any, borrow_id: str, user_id: str | None = None) -> Any | None:
    """Locate a loan by borrow id, optionally requiring a specific borrower."""
    for record in book.borrow_records:
        if record.borrow_id == borrow_id and (user_id is None or record.user_id == user_id):
            return record
    return None


def is_reservable(book: Any) -> bool:
    return 0 < book.available_copies < LOW_STOCK_THRESHOLD


def is_running_low(book: Any) -> bool:
    """Low-stock rule used by inventory analytics, distinct from reservability."""
    if book.available_copies <= ANALYTICS_LOW_STOCK_COPIES:
        return True
    return book.available_copies / book.total_copies < ANALYTICS_LOW_STOCK_RATIO


def verify_ledger(book: Any) -> None:
    """
    Check every ledger invariant of ``book``.

    Raises:
        LedgerInvariantError: if a counter is out of range, the cached
            available count drifted from the loan list, or one borrower
            holds two copies of the title.
    """
    book_id = getattr(book, "id", None)
    total = book.total_copies
    available = book.available_copies

    if available < 0:
        raise LedgerInvariantError(book_id, f"negative availability {available}")
    if available > total:
        raise LedgerInvariantError(book_id, f"available {available} exceeds total {total}")

    on_loan = active_borrow_count(book)
    if available != total - on_loan:
        raise LedgerInvariantError(
            book_id, f"available {available} != total {total} - {on_loan} loans"
        )

    duplicates = [
        user_id
        for user_id, count in Counter(r.user_id for r in book.borrow_records).items()
        if count > 1
    ]
    if duplicates:
        raise LedgerInvariantError(book_id, f"multiple loans held by {', '.join(duplicates)}")
