"""
Book and loan models for the Library Circulation server.

A Book is one catalog title with a number of physical copies. The copies
currently on loan are listed as BorrowRecord entries on the book itself, and
``available_copies`` is a cached count that every transaction keeps equal to
``total_copies - len(borrow_records)``.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..rules.ledger import is_reservable


class BorrowRecord(BaseModel):
    """One copy of a book on loan to one borrower."""

    borrow_id: str = Field(
        ...,
        description="Unique identifier of this loan",
        examples=["0d6f6f3e-5d6e-4a53-9a0e-55bb2a0e5c11"],
    )

    serial_number: str = Field(
        ...,
        description="Traceability number printed on the issue slip",
        pattern=r"^SN-\d+-[a-z0-9]+$",
        examples=["SN-1718000000000-k3j9x0q2a"],
    )

    user_id: str = Field(..., description="Borrower account identifier")

    issue_date: datetime = Field(..., description="When the copy was issued")

    due_date: datetime = Field(..., description="End of the last day of the loan")

    issued_by: str | None = Field(
        None,
        description="Staff account that issued the copy at the desk, if any",
    )

    def is_overdue(self, now: datetime) -> bool:
        return now > self.due_date

    model_config = ConfigDict(from_attributes=True)


class Book(BaseModel):
    """
    A catalog title together with its copy ledger.

    Instances are read-only snapshots; all changes to the counters or the
    loan list go through the circulation repository.
    """

    id: str = Field(..., description="Opaque book identifier", examples=["book_4f1c2a9e7b3d"])

    title: str = Field(..., min_length=1, max_length=500, examples=["Pather Panchali"])

    author: str = Field(
        ..., min_length=1, max_length=200, examples=["Bibhutibhushan Bandyopadhyay"]
    )

    genre: str | None = Field(None, max_length=100, examples=["Fiction"])

    rack: str | None = Field(
        None,
        description="Shelf or rack where the copies live",
        max_length=50,
        examples=["A-3"],
    )

    total_copies: int = Field(..., ge=0, description="Copies owned by the library")

    available_copies: int = Field(..., ge=0, description="Copies on the shelf right now")

    borrow_records: list[BorrowRecord] = Field(
        default_factory=list,
        description="Active loans, oldest first",
    )

    created_at: datetime | None = None

    @model_validator(mode="after")
    def validate_counts(self) -> "Book":
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def borrowed_copies(self) -> int:
        return self.total_copies - self.available_copies

    @property
    def is_low_stock(self) -> bool:
        """True when the title can be reserved instead of borrowed outright."""
        return is_reservable(self)

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "book_4f1c2a9e7b3d",
                "title": "Pather Panchali",
                "author": "Bibhutibhushan Bandyopadhyay",
                "genre": "Fiction",
                "rack": "A-3",
                "total_copies": 4,
                "available_copies": 3,
            }
        },
    )
