"""Tests for the catalog MCP tools."""

import pytest

from library_circulation.tools.catalog import (
    add_book_handler,
    delete_book_handler,
    update_book_handler,
)
from library_circulation.tools.circulation import borrow_book_handler


@pytest.mark.asyncio
class TestCatalogTools:
    async def test_add_book(self, installed_db, users, fetch_book):
        response = await add_book_handler(
            {
                "actor_id": "librarian_nasrin",
                "title": "Lalsalu",
                "author": "Syed Waliullah",
                "genre": "Fiction",
                "rack": "C-2",
                "total_copies": 6,
            }
        )

        book = response["data"]["book"]
        assert book["id"].startswith("book_")
        assert (book["total_copies"], book["available_copies"]) == (6, 6)
        assert fetch_book(book["id"]).rack == "C-2"

    async def test_reader_cannot_add(self, installed_db, users):
        response = await add_book_handler(
            {"actor_id": "reader_tania", "title": "X", "author": "Y", "total_copies": 1}
        )
        assert response["data"]["reason"] == "permission_denied"

    async def test_negative_copies_rejected(self, installed_db, users):
        response = await add_book_handler(
            {"actor_id": "admin_rahman", "title": "X", "author": "Y", "total_copies": -1}
        )
        assert response["data"]["reason"] == "invalid_request"

    async def test_update_only_touches_given_fields(self, installed_db, users, make_book):
        book = make_book(total=3, genre="Fiction", rack="A-1")

        response = await update_book_handler(
            {"actor_id": "librarian_nasrin", "book_id": book.id, "rack": None, "total_copies": 5}
        )

        updated = response["data"]["book"]
        assert updated["rack"] is None
        assert updated["genre"] == "Fiction"
        assert (updated["total_copies"], updated["available_copies"]) == (5, 5)

    async def test_update_below_loans_rejected(self, installed_db, users, make_book):
        book = make_book(total=1)
        await borrow_book_handler({"actor_id": "reader_tania", "book_id": book.id})

        response = await update_book_handler(
            {"actor_id": "admin_rahman", "book_id": book.id, "total_copies": 0}
        )
        assert response["data"]["reason"] == "copies_on_loan"

    async def test_delete(self, installed_db, users, make_book, fetch_book):
        book = make_book(total=1)
        borrowed = await borrow_book_handler({"actor_id": "reader_tania", "book_id": book.id})

        refused = await delete_book_handler({"actor_id": "admin_rahman", "book_id": book.id})
        assert refused["data"]["reason"] == "copies_on_loan"

        assert borrowed["data"]["receipt"]["book_available_copies"] == 0
        other = make_book(total=2, title="Hajar Bochhor Dhore")
        deleted = await delete_book_handler({"actor_id": "admin_rahman", "book_id": other.id})
        assert "isError" not in deleted
        assert fetch_book(other.id) is None
