"""
Catalog resources.

- library://books/list: every title with its counters and active loans
- library://books/{book_id}: one title, with its reservability
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.book_repository import BookRepository, BookSearchParams
from ..database.repository import PaginationParams
from ..database.session import session_scope
from ..observability import trace_resource

logger = logging.getLogger(__name__)

CATALOG_PAGE_SIZE = 100


@trace_resource("books.list")
async def list_books_handler() -> dict[str, Any]:
    """Returns the first page of the catalog, ordered by title."""
    try:
        with session_scope() as session:
            result = BookRepository(session).search(
                BookSearchParams(),
                pagination=PaginationParams(page=1, page_size=CATALOG_PAGE_SIZE),
            )
            return result.model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in books/list resource")
        raise ResourceError(f"Failed to retrieve book list: {e!s}") from e


@trace_resource("books.detail")
async def get_book_handler(book_id: str) -> dict[str, Any]:
    try:
        logger.debug("MCP Resource Request - books/%s", book_id)
        with session_scope() as session:
            book = BookRepository(session).get_by_id(book_id)
            if book is None:
                raise ResourceError(f"Book not found: {book_id}")
            return {
                **book.model_dump(mode="json"),
                "borrowed_copies": book.borrowed_copies,
                "is_low_stock": book.is_low_stock,
            }
    except ResourceError:
        raise
    except Exception as e:
        logger.exception("Error in books/{book_id} resource")
        raise ResourceError(f"Failed to retrieve book details: {e!s}") from e


book_resources: list[dict[str, Any]] = [
    {
        "uri": "library://books/list",
        "name": "Book Catalog",
        "description": (
            "The library catalog: every title with total and available copies "
            "and the copies currently on loan."
        ),
        "mime_type": "application/json",
        "handler": list_books_handler,
    },
    {
        "uri_template": "library://books/{book_id}",
        "name": "Book Details",
        "description": "One title with its copy ledger and whether it can be reserved",
        "mime_type": "application/json",
        "handler": get_book_handler,
    },
]
