"""
Library-wide report models.

Both reports are computed on demand from the current tables; nothing here is
persisted.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class OverdueItem(BaseModel):
    book_id: str
    book_title: str
    borrow_id: str
    due_date: datetime
    days_overdue: int = Field(..., ge=0, description="Open days past the due date")
    fine: int = Field(..., ge=0)


class ReaderFines(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    total_fine: int = 0
    total_borrowed: int = 0
    overdue_books: list[OverdueItem] = Field(default_factory=list)

    @property
    def overdue_count(self) -> int:
        return len(self.overdue_books)


class FinesReport(BaseModel):
    """Outstanding overdue fines per reader, largest first."""

    as_of: date
    readers: list[ReaderFines]

    @property
    def total_fines(self) -> int:
        return sum(reader.total_fine for reader in self.readers)

    @property
    def readers_with_fines(self) -> int:
        return sum(1 for reader in self.readers if reader.total_fine > 0)

    @property
    def overdue_books(self) -> int:
        return sum(reader.overdue_count for reader in self.readers)


class StockSummary(BaseModel):
    """Copy totals for one rack or one genre."""

    name: str
    titles: int = 0
    total: int = 0
    available: int = 0
    borrowed: int = 0


class StockItem(BaseModel):
    book_id: str
    title: str
    rack: str | None = None
    total_copies: int
    available_copies: int


class InventoryReport(BaseModel):
    total_books: int
    total_copies: int
    total_available: int
    total_borrowed: int
    racks: list[StockSummary]
    genres: list[StockSummary]
    low_stock: list[StockItem]
    out_of_stock: list[StockItem]
