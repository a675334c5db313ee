"""
Catalog tools for library staff: add, update and delete books.

Changing a title's total copies is a ledger change; availability moves by
the same amount and the total can never drop below the copies on loan.
"""

from typing import Any

from pydantic import Field

from ..database.book_repository import BookCreateSchema
from ..database.circulation_repository import BookUpdateSchema
from ..observability import trace_tool
from .base import ActorInput, run_desk_operation
from .circulation import BookId


class AddBookInput(ActorInput):
    """Input schema for the add_book tool."""

    title: str = Field(..., min_length=1, max_length=500, examples=["Pather Panchali"])
    author: str = Field(
        ..., min_length=1, max_length=200, examples=["Bibhutibhushan Bandyopadhyay"]
    )
    genre: str | None = Field(None, max_length=100, examples=["Fiction"])
    rack: str | None = Field(None, max_length=50, examples=["A-3"])
    total_copies: int = Field(..., ge=0, le=10_000, examples=[4])


class UpdateBookInput(ActorInput):
    """Input schema for the update_book tool. Omitted fields stay unchanged."""

    book_id: BookId
    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, min_length=1, max_length=200)
    genre: str | None = Field(None, max_length=100)
    rack: str | None = Field(None, max_length=50)
    total_copies: int | None = Field(None, ge=0, le=10_000)


class DeleteBookInput(ActorInput):
    """Input schema for the delete_book tool."""

    book_id: BookId


def _update_changes(params: UpdateBookInput) -> BookUpdateSchema:
    fields = params.model_fields_set - {"actor_id", "book_id"}
    return BookUpdateSchema(**params.model_dump(include=fields))


@trace_tool("add_book")
async def add_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "add_book",
        arguments,
        AddBookInput,
        lambda desk, params: desk.add_book(
            BookCreateSchema(**params.model_dump(exclude={"actor_id"}))
        ),
    )


@trace_tool("update_book")
async def update_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "update_book",
        arguments,
        UpdateBookInput,
        lambda desk, params: desk.update_book(params.book_id, _update_changes(params)),
    )


@trace_tool("delete_book")
async def delete_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "delete_book",
        arguments,
        DeleteBookInput,
        lambda desk, params: desk.delete_book(params.book_id),
    )


add_book = {
    "name": "add_book",
    "description": (
        "Staff only. Add a title to the catalog with its number of copies; "
        "all copies start on the shelf."
    ),
    "inputSchema": AddBookInput.model_json_schema(),
    "handler": add_book_handler,
}

update_book = {
    "name": "update_book",
    "description": (
        "Staff only. Update a title's details or total copies. Available copies shift "
        "with the total; the total cannot drop below the copies currently on loan."
    ),
    "inputSchema": UpdateBookInput.model_json_schema(),
    "handler": update_book_handler,
}

delete_book = {
    "name": "delete_book",
    "description": "Staff only. Delete a title that has no copies on loan.",
    "inputSchema": DeleteBookInput.model_json_schema(),
    "handler": delete_book_handler,
}
