"""
Result values returned by circulation operations.

Expected failures (a precondition that does not hold, an unknown id, a
permission the caller lacks) come back as a failed TransactionResult with a
machine-checkable reason. Store outages are not results; they propagate as
exceptions.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class FailureReason(str, Enum):
    """Reason codes for failed transactions."""

    PERMISSION_DENIED = "permission_denied"
    INVALID_REQUEST = "invalid_request"
    BOOK_NOT_FOUND = "book_not_found"
    USER_NOT_FOUND = "user_not_found"
    RESERVATION_NOT_FOUND = "reservation_not_found"
    BORROW_RECORD_NOT_FOUND = "borrow_record_not_found"
    ALREADY_BORROWED = "already_borrowed"
    NO_COPIES_AVAILABLE = "no_copies_available"
    NOT_LOW_STOCK = "not_low_stock"
    OUT_OF_STOCK = "out_of_stock"
    ALREADY_RESERVED = "already_reserved"
    RESERVED_BY_OTHER = "reserved_by_other"
    RESERVATION_NOT_ACTIVE = "reservation_not_active"
    LATE_RETURN = "late_return"
    DUPLICATE_ACCOUNT = "duplicate_account"
    COPIES_ON_LOAN = "copies_on_loan"


class TransactionResult(BaseModel):
    """Outcome of one circulation, catalog or account operation."""

    success: bool
    message: str
    reason: FailureReason | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "TransactionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, reason: FailureReason, message: str) -> "TransactionResult":
        return cls(success=False, message=message, reason=reason)
