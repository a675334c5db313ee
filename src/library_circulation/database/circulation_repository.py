"""
Circulation repository for the Library Circulation server.

Every operation that changes a book's copy ledger lives here:

1. **Borrow / manual issue**: append a loan, decrement availability and write
   the history entry (manual issue also collects the borrower's reservation)
2. **Return / accept return**: remove the loan, increment availability and
   close the history entry
3. **Reserve / cancel / expire**: reservation state transitions
4. **Catalog edits**: total-copy changes and deletions, which move the
   counters too

Each write runs inside ``SerializedAccess.run`` against the book it touches,
so the precondition checks and the state change form one atomic unit and the
book row, its loans, the history table and the reservations table commit or
roll back together. A failed precondition raises CirculationError, which
rolls the whole unit back.
"""

import logging
import secrets
import string
import uuid
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.book import Book as BookModel
from ..models.circulation import ActiveLoan, LoanReceipt, ReservationView
from ..models.history import HistoryRecord as HistoryModel
from ..models.history import HistoryStatus
from ..models.reservation import Reservation as ReservationModel
from ..models.reservation import ReservationStatus
from ..models.results import FailureReason
from ..rules.calendar import as_date, due_date, reservation_deadline
from ..rules.fines import is_return_late, overdue_fine, return_fine
from ..rules.ledger import (
    LOW_STOCK_THRESHOLD,
    LedgerInvariantError,
    active_borrow_count,
    available_count,
    find_borrow_record,
    is_borrowed_by,
    verify_ledger,
)
from .errors import CirculationError
from .schema import Book as BookDB
from .schema import BorrowRecord as BorrowDB
from .schema import HistoryRecord as HistoryDB
from .schema import Reservation as ReservationDB
from .schema import User as UserDB
from .session import DatabaseManager, safe_query

logger = logging.getLogger(__name__)

_SERIAL_ALPHABET = string.ascii_lowercase + string.digits


class BookUpdateSchema(BaseModel):
    """Editable catalog fields; unset fields are left alone."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, min_length=1, max_length=200)
    genre: str | None = Field(None, max_length=100)
    rack: str | None = Field(None, max_length=50)
    total_copies: int | None = Field(None, ge=0, le=10_000)


class CirculationRepository:
    """
    Ledger-changing operations plus the reader-facing circulation queries.

    Args:
        db_manager: Source of sessions and of the per-book serializer
        clock: Returns "now"; injectable so tests can pin the calendar
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_manager = db_manager
        self.clock = clock

    @property
    def _serialized(self):
        return self.db_manager.serialized_access

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def borrow(self, book_id: str, user_id: str) -> LoanReceipt:
        """
        Issue one copy of a book to the reader asking for it.

        Raises:
            CirculationError: book_not_found, already_borrowed,
                no_copies_available or user_not_found
        """
        now = self.clock()

        def mutation(session: Session, book: BookDB | None) -> LoanReceipt:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found")
            if is_borrowed_by(book, user_id):
                raise CirculationError(
                    FailureReason.ALREADY_BORROWED, "You have already borrowed this book."
                )
            if available_count(book) <= 0:
                raise CirculationError(FailureReason.NO_COPIES_AVAILABLE, "No copies available.")

            borrower = self._require_user(session, user_id)
            history = self._open_loan(session, book, borrower, now, issued_by=None)
            return self._receipt(book, history)

        receipt = self._serialized.run(book_id, mutation)
        logger.info(
            "Book %s borrowed by %s (borrow %s)", book_id, user_id, receipt.loan.borrow_id
        )
        return receipt

    def manual_issue(self, book_id: str, user_id: str, issuer_id: str) -> LoanReceipt:
        """
        Issue a copy at the desk on behalf of ``user_id``.

        When the title is low in stock, the borrower's own active reservation is
        marked collected as part of the same transaction. Without one, an
        active reservation held by someone else blocks the issue.

        Raises:
            CirculationError: book_not_found, user_not_found,
                no_copies_available, reserved_by_other or already_borrowed
        """
        now = self.clock()

        def mutation(session: Session, book: BookDB | None) -> LoanReceipt:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found")
            borrower = self._require_user(session, user_id)
            if available_count(book) <= 0:
                raise CirculationError(FailureReason.NO_COPIES_AVAILABLE, "No copies available.")

            collected = None
            if available_count(book) < LOW_STOCK_THRESHOLD:
                reservations = self._active_reservations(session, book.id)
                own = [r for r in reservations if r.user_id == user_id]
                others = [r for r in reservations if r.user_id != user_id]
                if others and not own:
                    raise CirculationError(
                        FailureReason.RESERVED_BY_OTHER,
                        f"This book is reserved by {others[0].user_email}. "
                        "Please check with them first or cancel their reservation.",
                    )
                if own:
                    collected = own[0]

            if is_borrowed_by(book, user_id):
                raise CirculationError(
                    FailureReason.ALREADY_BORROWED, "User has already borrowed this book."
                )

            if collected is not None:
                collected.status = ReservationStatus.COLLECTED
                collected.collected_at = now
                collected.collected_by = issuer_id

            history = self._open_loan(session, book, borrower, now, issued_by=issuer_id)
            return self._receipt(book, history, collected=collected)

        receipt = self._serialized.run(book_id, mutation)
        logger.info(
            "Book %s issued to %s by %s%s",
            book_id,
            user_id,
            issuer_id,
            " (reservation collected)" if receipt.collected_reservation else "",
        )
        return receipt

    def return_book(self, book_id: str, borrow_id: str, user_id: str) -> LoanReceipt:
        """
        Self-service return by the borrower.

        Late returns are refused; they have to be accepted at the desk, where
        the fine is assessed.

        Raises:
            CirculationError: book_not_found, borrow_record_not_found or
                late_return
        """
        now = self.clock()

        def mutation(session: Session, book: BookDB | None) -> LoanReceipt:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found.")
            record = find_borrow_record(book, borrow_id, user_id)
            if record is None:
                raise CirculationError(
                    FailureReason.BORROW_RECORD_NOT_FOUND,
                    "Borrow record not found or does not belong to you.",
                )
            if is_return_late(record.due_date, now):
                raise CirculationError(
                    FailureReason.LATE_RETURN,
                    f"This book was due on {record.due_date:%B %d, %Y}. "
                    "Late returns must be completed at the library desk.",
                )
            history = self._close_loan(session, book, record, now, fine=0)
            return self._receipt(book, history)

        receipt = self._serialized.run(book_id, mutation)
        logger.info("Book %s returned by %s (borrow %s)", book_id, user_id, borrow_id)
        return receipt

    def accept_return(self, book_id: str, borrow_id: str, staff_id: str) -> LoanReceipt:
        """
        Desk return of any loan, on time or late.

        The return fine is computed from the due date and stored on the
        history entry.

        Raises:
            CirculationError: book_not_found or borrow_record_not_found
        """
        now = self.clock()

        def mutation(session: Session, book: BookDB | None) -> LoanReceipt:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found.")
            record = find_borrow_record(book, borrow_id)
            if record is None:
                raise CirculationError(
                    FailureReason.BORROW_RECORD_NOT_FOUND, "Borrow record not found."
                )
            fine = return_fine(record.due_date, now)
            history = self._close_loan(session, book, record, now, fine=fine)
            return self._receipt(book, history, fine=fine)

        receipt = self._serialized.run(book_id, mutation)
        logger.info(
            "Return of borrow %s on book %s accepted by %s (fine %d)",
            borrow_id,
            book_id,
            staff_id,
            receipt.fine,
        )
        return receipt

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(self, book_id: str, user_id: str) -> ReservationModel:
        """
        Reserve a low-stock title.

        An active reservation that has already lapsed is marked expired and
        does not count as a duplicate.

        Raises:
            CirculationError: book_not_found, out_of_stock, not_low_stock,
                user_not_found or already_reserved
        """
        now = self.clock()

        def mutation(session: Session, book: BookDB | None) -> ReservationModel:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found.")
            available = available_count(book)
            if available == 0:
                raise CirculationError(
                    FailureReason.OUT_OF_STOCK,
                    "This book is currently out of stock. Please try again later.",
                )
            if available >= LOW_STOCK_THRESHOLD:
                raise CirculationError(
                    FailureReason.NOT_LOW_STOCK,
                    "This book is not low in stock. You can borrow it directly from the library.",
                )
            reader = self._require_user(session, user_id)

            for existing in self._active_reservations(session, book.id, user_id=user_id):
                if now > existing.deadline:
                    existing.status = ReservationStatus.EXPIRED
                    continue
                raise CirculationError(
                    FailureReason.ALREADY_RESERVED,
                    "You already have an active reservation for this book.",
                )

            reservation = ReservationDB(
                id=f"reservation_{uuid.uuid4().hex[:12]}",
                book_id=book.id,
                book_title=book.title,
                user_id=reader.id,
                user_email=reader.email,
                reservation_date=now,
                deadline=reservation_deadline(now),
                status=ReservationStatus.ACTIVE,
            )
            session.add(reservation)
            # Reservations are checked by manual issue; bump the book version
            # so the two never commit against the same stale read.
            book.updated_at = now
            session.flush()
            return ReservationModel.model_validate(reservation)

        reservation = self._serialized.run(book_id, mutation)
        logger.info(
            "Book %s reserved by %s until %s", book_id, user_id, reservation.deadline.isoformat()
        )
        return reservation

    def cancel_reservation(self, reservation_id: str, user_id: str) -> ReservationModel:
        """
        Cancel the caller's own active reservation.

        Raises:
            CirculationError: reservation_not_found or reservation_not_active
        """
        book_id = self._reservation_book_id(reservation_id)
        if book_id is None:
            raise CirculationError(
                FailureReason.RESERVATION_NOT_FOUND, "Reservation not found."
            )
        now = self.clock()

        def mutation(session: Session, book: BookDB | None) -> ReservationModel:
            reservation = session.get(ReservationDB, reservation_id)
            if reservation is None or reservation.user_id != user_id:
                raise CirculationError(
                    FailureReason.RESERVATION_NOT_FOUND,
                    "Reservation not found or does not belong to you.",
                )
            if reservation.status.is_terminal:
                raise CirculationError(
                    FailureReason.RESERVATION_NOT_ACTIVE,
                    f"Reservation is already {reservation.status.value}.",
                )
            reservation.status = ReservationStatus.CANCELLED
            reservation.cancelled_at = now
            if book is not None:
                book.updated_at = now
            session.flush()
            return ReservationModel.model_validate(reservation)

        reservation = self._serialized.run(book_id, mutation)
        logger.info("Reservation %s cancelled by %s", reservation_id, user_id)
        return reservation

    def expire_reservations(self) -> list[ReservationModel]:
        """Persist ``expired`` on every active reservation past its deadline."""
        now = self.clock()
        query = (
            select(ReservationDB.book_id)
            .where(
                ReservationDB.status == ReservationStatus.ACTIVE,
                ReservationDB.deadline < now,
            )
            .distinct()
        )
        with self.db_manager.session_scope() as session:
            book_ids = safe_query(
                session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to find lapsed reservations",
            )

        expired: list[ReservationModel] = []
        for book_id in book_ids:

            def mutation(session: Session, book: BookDB | None) -> list[ReservationModel]:
                lapsed = [
                    r for r in self._active_reservations(session, book_id) if r.deadline < now
                ]
                for reservation in lapsed:
                    reservation.status = ReservationStatus.EXPIRED
                if book is not None and lapsed:
                    book.updated_at = now
                session.flush()
                return [ReservationModel.model_validate(r) for r in lapsed]

            expired.extend(self._serialized.run(book_id, mutation))

        logger.info("Expired %d lapsed reservations", len(expired))
        return expired

    # ------------------------------------------------------------------
    # Catalog edits that move the counters
    # ------------------------------------------------------------------

    def update_book(self, book_id: str, changes: BookUpdateSchema) -> BookModel:
        """
        Edit a title. A new total shifts availability by the same amount.

        Raises:
            CirculationError: book_not_found, or copies_on_loan when the new
                total is below the number of copies currently out
        """
        now = self.clock()
        fields = changes.model_dump(exclude_unset=True)

        def mutation(session: Session, book: BookDB | None) -> BookModel:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found.")

            values = dict(fields)
            new_total = values.pop("total_copies", None)
            if new_total is not None:
                on_loan = active_borrow_count(book)
                if new_total < on_loan:
                    raise CirculationError(
                        FailureReason.COPIES_ON_LOAN,
                        f"Cannot set total copies to {new_total}: "
                        f"{on_loan} copies are currently on loan.",
                    )
                book.available_copies += new_total - book.total_copies
                book.total_copies = new_total

            for field, value in values.items():
                if value is None and field in ("title", "author"):
                    continue
                setattr(book, field, value.strip() if isinstance(value, str) else value)
            book.updated_at = now

            verify_ledger(book)
            session.flush()
            return BookModel.model_validate(book)

        updated = self._serialized.run(book_id, mutation)
        logger.info("Book %s updated: %s", book_id, ", ".join(sorted(changes.model_fields_set)))
        return updated

    def delete_book(self, book_id: str) -> BookModel:
        """
        Remove a title from the catalog. Its history entries are kept.

        Raises:
            CirculationError: book_not_found or copies_on_loan
        """

        def mutation(session: Session, book: BookDB | None) -> BookModel:
            if book is None:
                raise CirculationError(FailureReason.BOOK_NOT_FOUND, "Book not found.")
            if active_borrow_count(book) > 0:
                raise CirculationError(
                    FailureReason.COPIES_ON_LOAN,
                    "Cannot delete a book while copies are on loan.",
                )
            snapshot = BookModel.model_validate(book)
            session.delete(book)
            session.flush()
            return snapshot

        deleted = self._serialized.run(book_id, mutation)
        logger.info("Book %s (%s) deleted", book_id, deleted.title)
        return deleted

    # ------------------------------------------------------------------
    # Reader queries
    # ------------------------------------------------------------------

    def get_active_loans(self, user_id: str) -> list[ActiveLoan]:
        now = self.clock()
        query = (
            select(BorrowDB, BookDB.title)
            .join(BookDB, BorrowDB.book_id == BookDB.id)
            .where(BorrowDB.user_id == user_id)
            .order_by(BorrowDB.due_date)
        )
        with self.db_manager.session_scope() as session:
            rows = safe_query(
                session, lambda s: s.execute(query).all(), "Failed to get active loans"
            )
            return [
                ActiveLoan(
                    book_id=record.book_id,
                    book_title=title,
                    borrow_id=record.borrow_id,
                    serial_number=record.serial_number,
                    issue_date=record.issue_date,
                    due_date=record.due_date,
                    days_remaining=(as_date(record.due_date) - as_date(now)).days,
                    is_overdue=now > record.due_date,
                    accrued_fine=overdue_fine(record.due_date, now),
                )
                for record, title in rows
            ]

    def get_history(self, user_id: str) -> list[HistoryModel]:
        query = (
            select(HistoryDB)
            .where(HistoryDB.user_id == user_id)
            .order_by(HistoryDB.borrow_date.desc())
        )
        with self.db_manager.session_scope() as session:
            rows = safe_query(
                session, lambda s: s.execute(query).scalars().all(), "Failed to get history"
            )
            return [HistoryModel.model_validate(row) for row in rows]

    def list_reservations(
        self,
        user_id: str | None = None,
        status: ReservationStatus | None = None,
    ) -> list[ReservationView]:
        """
        Reservations newest first, with derived status and fine.

        ``status`` filters on the derived status, so asking for ``expired``
        also returns lapsed reservations that were never swept.
        """
        now = self.clock()
        query = select(ReservationDB).order_by(ReservationDB.reservation_date.desc())
        if user_id is not None:
            query = query.where(ReservationDB.user_id == user_id)
        with self.db_manager.session_scope() as session:
            rows = safe_query(
                session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to list reservations",
            )
            views = [ReservationView.at(ReservationModel.model_validate(r), now) for r in rows]
        if status is not None:
            views = [view for view in views if view.effective_status == status]
        return views

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, session: Session, user_id: str) -> UserDB:
        user = session.get(UserDB, user_id)
        if user is None:
            raise CirculationError(FailureReason.USER_NOT_FOUND, "User not found.")
        return user

    def _active_reservations(
        self, session: Session, book_id: str, user_id: str | None = None
    ) -> list[ReservationDB]:
        query = (
            select(ReservationDB)
            .where(
                ReservationDB.book_id == book_id,
                ReservationDB.status == ReservationStatus.ACTIVE,
            )
            .order_by(ReservationDB.reservation_date)
        )
        if user_id is not None:
            query = query.where(ReservationDB.user_id == user_id)
        return list(session.execute(query).scalars().all())

    def _reservation_book_id(self, reservation_id: str) -> str | None:
        with self.db_manager.session_scope() as session:
            return safe_query(
                session,
                lambda s: s.execute(
                    select(ReservationDB.book_id).where(ReservationDB.id == reservation_id)
                ).scalar_one_or_none(),
                "Failed to get reservation",
            )

    def _open_loan(
        self,
        session: Session,
        book: BookDB,
        borrower: UserDB,
        now: datetime,
        issued_by: str | None,
    ) -> HistoryDB:
        record = BorrowDB(
            borrow_id=str(uuid.uuid4()),
            user_id=borrower.id,
            serial_number=self._generate_serial_number(now),
            issue_date=now,
            due_date=due_date(now),
            issued_by=issued_by,
        )
        book.borrow_records.append(record)
        book.available_copies -= 1
        book.updated_at = now

        history = HistoryDB(
            id=f"history_{uuid.uuid4().hex[:12]}",
            book_id=book.id,
            book_title=book.title,
            user_id=borrower.id,
            user_email=borrower.email,
            borrow_id=record.borrow_id,
            serial_number=record.serial_number,
            borrow_date=record.issue_date,
            due_date=record.due_date,
            status=HistoryStatus.BORROWED,
            issued_by=issued_by,
            fine_assessed=0,
        )
        session.add(history)

        verify_ledger(book)
        session.flush()
        return history

    def _close_loan(
        self,
        session: Session,
        book: BookDB,
        record: BorrowDB,
        now: datetime,
        fine: int,
    ) -> HistoryDB:
        history = session.execute(
            select(HistoryDB).where(
                HistoryDB.borrow_id == record.borrow_id,
                HistoryDB.user_id == record.user_id,
                HistoryDB.status == HistoryStatus.BORROWED,
            )
        ).scalar_one_or_none()
        if history is None:
            raise LedgerInvariantError(
                book.id, f"loan {record.borrow_id} has no open history entry"
            )

        book.borrow_records.remove(record)
        book.available_copies += 1
        book.updated_at = now

        history.status = HistoryStatus.RETURNED
        history.return_date = now
        history.fine_assessed = fine

        verify_ledger(book)
        session.flush()
        return history

    def _receipt(
        self,
        book: BookDB,
        history: HistoryDB,
        collected: ReservationDB | None = None,
        fine: int = 0,
    ) -> LoanReceipt:
        return LoanReceipt(
            loan=HistoryModel.model_validate(history),
            book_available_copies=book.available_copies,
            collected_reservation=(
                ReservationModel.model_validate(collected) if collected is not None else None
            ),
            fine=fine,
        )

    def _generate_serial_number(self, now: datetime) -> str:
        suffix = "".join(secrets.choice(_SERIAL_ALPHABET) for _ in range(9))
        return f"SN-{int(now.timestamp() * 1000)}-{suffix}"
