"""
Report repository for the Library Circulation server.

Library-wide read models for staff: outstanding overdue fines per reader and
inventory analytics. Both are computed from the live tables on every call.
"""

from collections import defaultdict
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.history import HistoryStatus
from ..models.reports import (
    FinesReport,
    InventoryReport,
    OverdueItem,
    ReaderFines,
    StockItem,
    StockSummary,
)
from ..models.user import Role
from ..models.user import User as UserModel
from ..rules.calendar import as_date
from ..rules.fines import days_late, overdue_fine
from ..rules.ledger import is_running_low
from .schema import Book as BookDB
from .schema import HistoryRecord as HistoryDB
from .schema import User as UserDB
from .session import safe_query

UNASSIGNED = "Unassigned"


class ReportRepository:
    def __init__(self, session: Session):
        self.session = session

    def fines_report(self, today: date | datetime) -> FinesReport:
        """
        Overdue fines for every reader as of ``today``.

        Only loans still out count; a loan is overdue once its due date is
        before ``today``, and its fine covers the open days in between.
        """
        today = as_date(today)
        readers = safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB).where(UserDB.role == Role.READER).order_by(UserDB.email)
            )
            .scalars()
            .all(),
            "Failed to list readers",
        )
        open_loans = safe_query(
            self.session,
            lambda s: s.execute(
                select(HistoryDB).where(HistoryDB.status == HistoryStatus.BORROWED)
            )
            .scalars()
            .all(),
            "Failed to list open loans",
        )

        loans_by_user: dict[str, list[HistoryDB]] = defaultdict(list)
        for loan in open_loans:
            loans_by_user[loan.user_id].append(loan)

        entries = []
        for reader in readers:
            loans = loans_by_user.get(reader.id, [])
            overdue = [
                OverdueItem(
                    book_id=loan.book_id,
                    book_title=loan.book_title,
                    borrow_id=loan.borrow_id,
                    due_date=loan.due_date,
                    days_overdue=days_late(loan.due_date, today),
                    fine=overdue_fine(loan.due_date, today),
                )
                for loan in sorted(loans, key=lambda loan: loan.due_date)
                if as_date(loan.due_date) < today
            ]
            entries.append(
                ReaderFines(
                    user_id=reader.id,
                    user_name=UserModel.model_validate(reader).label,
                    user_email=reader.email,
                    total_fine=sum(item.fine for item in overdue),
                    total_borrowed=len(loans),
                    overdue_books=overdue,
                )
            )

        entries.sort(key=lambda entry: (-entry.total_fine, entry.user_email))
        return FinesReport(as_of=today, readers=entries)

    def inventory_analytics(self) -> InventoryReport:
        books = safe_query(
            self.session,
            lambda s: s.execute(select(BookDB).order_by(BookDB.title)).scalars().all(),
            "Failed to list books",
        )

        racks: dict[str, StockSummary] = {}
        genres: dict[str, StockSummary] = {}
        for book in books:
            for groups, name in ((racks, book.rack), (genres, book.genre)):
                key = name or UNASSIGNED
                summary = groups.setdefault(key, StockSummary(name=key))
                summary.titles += 1
                summary.total += book.total_copies
                summary.available += book.available_copies
                summary.borrowed += book.total_copies - book.available_copies

        low_stock = sorted(
            (book for book in books if is_running_low(book)),
            key=lambda book: book.available_copies,
        )

        return InventoryReport(
            total_books=len(books),
            total_copies=sum(book.total_copies for book in books),
            total_available=sum(book.available_copies for book in books),
            total_borrowed=sum(book.total_copies - book.available_copies for book in books),
            racks=[racks[key] for key in sorted(racks)],
            genres=[genres[key] for key in sorted(genres)],
            low_stock=[self._stock_item(book) for book in low_stock],
            out_of_stock=[
                self._stock_item(book) for book in books if book.available_copies == 0
            ],
        )

    @staticmethod
    def _stock_item(book: BookDB) -> StockItem:
        return StockItem(
            book_id=book.id,
            title=book.title,
            rack=book.rack,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
        )
