"""
Borrow history models.

A HistoryRecord is the audit trail entry for one loan. It is written when a
copy is issued and updated exactly once, when that copy comes back.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HistoryStatus(str, Enum):
    """Lifecycle of a loan in the audit trail."""

    BORROWED = "borrowed"
    RETURNED = "returned"


class HistoryRecord(BaseModel):
    """Audit entry mirroring one BorrowRecord."""

    id: str = Field(..., pattern=r"^history_[a-f0-9]{12,}$")
    book_id: str
    book_title: str
    user_id: str
    user_email: str
    borrow_id: str
    serial_number: str
    borrow_date: datetime
    due_date: datetime
    return_date: datetime | None = None
    status: HistoryStatus = HistoryStatus.BORROWED
    issued_by: str | None = None
    fine_assessed: int = Field(
        default=0,
        ge=0,
        description="Fine recorded when a late copy was accepted back at the desk",
    )

    def is_overdue(self, now: datetime) -> bool:
        return self.status == HistoryStatus.BORROWED and now > self.due_date

    model_config = ConfigDict(from_attributes=True)
