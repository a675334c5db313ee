"""
Pydantic models for the Library Circulation server.

- Book / BorrowRecord: catalog titles and their active loans
- HistoryRecord: append-only loan audit trail
- Reservation: holds on low-stock titles
- User / Role: accounts and their permission role
- TransactionResult / FailureReason: outcomes of circulation operations
- LoanReceipt, ActiveLoan, ReservationView: circulation views
- FinesReport, InventoryReport: library-wide reports
"""

from .book import Book, BorrowRecord
from .circulation import ActiveLoan, LoanReceipt, ReservationView
from .history import HistoryRecord, HistoryStatus
from .reports import FinesReport, InventoryReport, OverdueItem, ReaderFines, StockItem, StockSummary
from .reservation import Reservation, ReservationStatus
from .results import FailureReason, TransactionResult
from .user import Role, User

__all__ = [
    "ActiveLoan",
    "Book",
    "BorrowRecord",
    "FailureReason",
    "FinesReport",
    "HistoryRecord",
    "HistoryStatus",
    "InventoryReport",
    "LoanReceipt",
    "OverdueItem",
    "ReaderFines",
    "Reservation",
    "ReservationStatus",
    "ReservationView",
    "Role",
    "StockItem",
    "StockSummary",
    "TransactionResult",
    "User",
]
