"""
Book repository for the Library Circulation server.

Read access to the catalog plus creation of new titles. A new title starts
with every copy on the shelf. Changing the counters of an existing title is
a ledger write and lives in the circulation repository.
"""

import logging
import uuid
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select

from ..models.book import Book as BookModel
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Book as BookDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class BookCreateSchema(BaseModel):
    """Catalog fields supplied by staff when adding a title."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    genre: str | None = Field(None, max_length=100)
    rack: str | None = Field(None, max_length=50)
    total_copies: int = Field(..., ge=0, le=10_000)


class BookSearchParams(BaseModel):
    """Filters for the catalog listing."""

    query: str | None = None  # title or author contains
    genre: str | None = None
    rack: str | None = None
    available_only: bool = False


class BookRepository(BaseRepository[BookDB, BookModel]):
    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def create(self, data: BookCreateSchema, now: datetime | None = None) -> BookModel:
        """Add a title with ``available_copies`` equal to ``total_copies``."""
        created_at = now or datetime.now()
        db_obj = BookDB(
            id=self._generate_book_id(),
            title=data.title.strip(),
            author=data.author.strip(),
            genre=data.genre,
            rack=data.rack,
            total_copies=data.total_copies,
            available_copies=data.total_copies,
            created_at=created_at,
            updated_at=created_at,
        )
        self.session.add(db_obj)
        safe_commit(self.session, "create Book")
        logger.info("Added book %s (%s copies)", db_obj.id, db_obj.total_copies)
        return self._to_response_model(db_obj)

    def search(
        self,
        search_params: BookSearchParams,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[BookModel]:
        """Filter the catalog, ordered by title."""
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        conditions = []
        if search_params.query:
            term = f"%{search_params.query.strip()}%"
            conditions.append(or_(BookDB.title.ilike(term), BookDB.author.ilike(term)))
        if search_params.genre:
            conditions.append(func.lower(BookDB.genre) == search_params.genre.lower())
        if search_params.rack:
            conditions.append(BookDB.rack == search_params.rack)
        if search_params.available_only:
            conditions.append(BookDB.available_copies > 0)

        count_query = select(func.count()).select_from(BookDB).where(*conditions)
        total = (
            safe_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to count books",
            )
            or 0
        )

        query = (
            select(BookDB)
            .where(*conditions)
            .order_by(BookDB.title)
            .offset(pagination.offset)
            .limit(pagination.page_size)
        )
        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to search books",
        )
        return PaginatedResponse[BookModel].build(
            [self._to_response_model(book) for book in results], total, pagination
        )

    def _generate_book_id(self) -> str:
        return f"book_{uuid.uuid4().hex[:12]}"
