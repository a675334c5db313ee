"""
SQLAlchemy database schema for the Library Circulation server.

The tables back the MCP tools (which mutate circulation state) and resources
(which read it):

- books: catalog titles with their copy counters, versioned for optimistic
  concurrency
- borrow_records: copies currently on loan, owned by their book
- borrow_history: append-only loan audit trail
- reservations: holds on low-stock titles
- users: accounts and their roles
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from ..models.history import HistoryStatus
from ..models.reservation import ReservationStatus
from ..models.user import Role

Base = declarative_base()


class User(Base):
    """
    Users table - library accounts.

    MCP Usage:
    - Tools: create_account, change_user_role
    - Every tool resolves its caller's role from this table
    """

    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(200), nullable=True)
    role = Column(Enum(Role), nullable=False, default=Role.READER)
    created_at = Column(DateTime, nullable=False)
    created_by = Column(String(128), nullable=True)

    __table_args__ = (
        Index("idx_user_email", "email"),
        Index("idx_user_role", "role"),
    )


class Book(Base):
    """
    Books table - the catalog and its copy ledger.

    MCP Usage:
    - Resource: library://books/list, library://books/{book_id}
    - Tools: every circulation tool locks and updates one row here

    ``version`` is bumped by SQLAlchemy on every UPDATE of the row; a flush
    against a stale version raises StaleDataError and the transaction is
    retried from a fresh read.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=False)
    genre = Column(String(100), nullable=True)
    rack = Column(String(50), nullable=True)
    total_copies = Column(Integer, nullable=False)
    available_copies = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    borrow_records = relationship(
        "BorrowRecord",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BorrowRecord.issue_date",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_book_genre", "genre"),
        Index("idx_book_rack", "rack"),
        Index("idx_book_availability", "available_copies"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
    )


class BorrowRecord(Base):
    """
    Borrow records table - one row per copy currently on loan.

    Rows are inserted by a borrow and deleted by the matching return; they are
    never updated in place.
    """

    __tablename__ = "borrow_records"

    borrow_id = Column(String(36), primary_key=True)
    book_id = Column(String(50), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    serial_number = Column(String(40), nullable=False, unique=True)
    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    issued_by = Column(String(128), nullable=True)

    book = relationship("Book", back_populates="borrow_records")

    __table_args__ = (
        UniqueConstraint("book_id", "user_id", name="unique_loan_per_borrower"),
        Index("idx_borrow_user", "user_id"),
        Index("idx_borrow_due_date", "due_date"),
    )


class HistoryRecord(Base):
    """
    Borrow history table - audit trail of every loan.

    MCP Usage:
    - Resource: library://readers/{user_id}/history, library://reports/fines
    - Written in the same transaction as the loan it mirrors
    """

    __tablename__ = "borrow_history"

    id = Column(String(50), primary_key=True)
    # Book rows may be deleted later; history keeps the title it was issued under
    book_id = Column(String(50), nullable=False)
    book_title = Column(String(500), nullable=False)
    user_id = Column(String(128), nullable=False)
    user_email = Column(String(255), nullable=False)
    borrow_id = Column(String(36), nullable=False, unique=True)
    serial_number = Column(String(40), nullable=False)
    borrow_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(Enum(HistoryStatus), nullable=False, default=HistoryStatus.BORROWED)
    issued_by = Column(String(128), nullable=True)
    fine_assessed = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_history_user", "user_id"),
        Index("idx_history_status", "status"),
        Index("idx_history_loan", "borrow_id", "user_id", "status"),
        CheckConstraint("id LIKE 'history_%'", name="check_history_id_format"),
        CheckConstraint("fine_assessed >= 0", name="check_fine_non_negative"),
    )


class Reservation(Base):
    """
    Reservations table - holds on low-stock titles.

    MCP Usage:
    - Tools: reserve_book, cancel_reservation, issue_book (collects),
      expire_reservations
    - Resource: library://readers/{user_id}/reservations
    """

    __tablename__ = "reservations"

    id = Column(String(50), primary_key=True)
    book_id = Column(String(50), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    book_title = Column(String(500), nullable=False)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    user_email = Column(String(255), nullable=False)
    reservation_date = Column(DateTime, nullable=False)
    deadline = Column(DateTime, nullable=False)
    status = Column(
        Enum(ReservationStatus), nullable=False, default=ReservationStatus.ACTIVE
    )
    collected_at = Column(DateTime, nullable=True)
    collected_by = Column(String(128), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_reservation_book_status", "book_id", "status"),
        Index("idx_reservation_user", "user_id"),
        CheckConstraint("id LIKE 'reservation_%'", name="check_reservation_id_format"),
        CheckConstraint("deadline > reservation_date", name="check_deadline_after_reservation"),
    )
