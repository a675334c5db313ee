"""
Reservation model.

Readers may hold a low-stock title for a short collection window. Nothing
ever writes ``expired`` on its own: a reservation left ``active`` past its
deadline is reported as expired by :meth:`Reservation.effective_status`, and
staff can persist that state with the expire operation.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..rules.fines import reservation_fine


class ReservationStatus(str, Enum):
    """Status of a reservation."""

    ACTIVE = "active"
    COLLECTED = "collected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ReservationStatus.ACTIVE


class Reservation(BaseModel):
    """A reader's claim on one copy of a low-stock title."""

    id: str = Field(..., pattern=r"^reservation_[a-f0-9]{12,}$")
    book_id: str
    book_title: str
    user_id: str
    user_email: str
    reservation_date: datetime
    deadline: datetime
    status: ReservationStatus = ReservationStatus.ACTIVE
    collected_at: datetime | None = None
    collected_by: str | None = None
    cancelled_at: datetime | None = None

    @model_validator(mode="after")
    def validate_dates(self) -> "Reservation":
        if self.deadline <= self.reservation_date:
            raise ValueError("Deadline must be after reservation date")
        return self

    def effective_status(self, now: datetime) -> ReservationStatus:
        """Stored status, with lapsed active reservations shown as expired."""
        if self.status == ReservationStatus.ACTIVE and now > self.deadline:
            return ReservationStatus.EXPIRED
        return self.status

    def accrued_fine(self, today: date | datetime) -> int:
        """Late-collection fine; only reservations still active accrue one."""
        if self.status != ReservationStatus.ACTIVE:
            return 0
        return reservation_fine(self.deadline, today)

    model_config = ConfigDict(from_attributes=True)
