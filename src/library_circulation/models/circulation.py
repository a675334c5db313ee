"""Views returned by circulation transactions and reader queries."""

from datetime import datetime

from pydantic import BaseModel, Field

from .history import HistoryRecord
from .reservation import Reservation, ReservationStatus


class LoanReceipt(BaseModel):
    """Result of issuing or closing a loan."""

    loan: HistoryRecord
    book_available_copies: int = Field(..., ge=0)
    collected_reservation: Reservation | None = None
    fine: int = Field(default=0, ge=0, description="Fine assessed when the loan closed")


class ActiveLoan(BaseModel):
    """One copy a reader currently holds."""

    book_id: str
    book_title: str
    borrow_id: str
    serial_number: str
    issue_date: datetime
    due_date: datetime
    days_remaining: int = Field(..., description="Negative once the loan is overdue")
    is_overdue: bool
    accrued_fine: int = 0


class ReservationView(BaseModel):
    """A reservation with its derived status and late-collection fine."""

    reservation: Reservation
    effective_status: ReservationStatus
    accrued_fine: int = 0

    @classmethod
    def at(cls, reservation: Reservation, now: datetime) -> "ReservationView":
        return cls(
            reservation=reservation,
            effective_status=reservation.effective_status(now),
            accrued_fine=reservation.accrued_fine(now),
        )
