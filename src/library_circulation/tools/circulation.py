"""
Circulation tools: borrowing, returning and reserving copies.

Reader tools act on the caller's own loans and reservations. Staff tools
(issue_book, accept_return, expire_reservations) act on behalf of any reader.
"""

from typing import Annotated, Any

from pydantic import Field

from ..observability import trace_tool
from .base import ActorInput, run_desk_operation

BookId = Annotated[
    str,
    Field(
        description="Identifier of the book",
        pattern=r"^book_[a-zA-Z0-9_]+$",
        examples=["book_4f1c2a9e7b3d"],
    ),
]

BorrowId = Annotated[
    str,
    Field(
        description="Borrow identifier printed on the loan record",
        min_length=1,
        max_length=36,
        examples=["0d6f6f3e-5d6e-4a53-9a0e-55bb2a0e5c11"],
    ),
]


class BorrowBookInput(ActorInput):
    """Input schema for the borrow_book tool."""

    book_id: BookId


class ReturnBookInput(ActorInput):
    """Input schema for the return_book tool."""

    book_id: BookId
    borrow_id: BorrowId


class ReserveBookInput(ActorInput):
    """Input schema for the reserve_book tool."""

    book_id: BookId


class CancelReservationInput(ActorInput):
    """Input schema for the cancel_reservation tool."""

    reservation_id: str = Field(
        ...,
        description="Identifier of the reservation to cancel",
        pattern=r"^reservation_[a-f0-9]+$",
        examples=["reservation_8c2e4b0a91f3"],
    )


class IssueBookInput(ActorInput):
    """Input schema for the issue_book tool."""

    book_id: BookId
    user_id: str = Field(
        ...,
        description="Account identifier of the reader receiving the copy",
        min_length=1,
        max_length=128,
        examples=["reader_jane"],
    )


class AcceptReturnInput(ActorInput):
    """Input schema for the accept_return tool."""

    book_id: BookId
    borrow_id: BorrowId


class ExpireReservationsInput(ActorInput):
    """Input schema for the expire_reservations tool."""


@trace_tool("borrow_book")
async def borrow_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Borrow one copy of a book for the calling reader."""
    return await run_desk_operation(
        "borrow_book",
        arguments,
        BorrowBookInput,
        lambda desk, params: desk.borrow(params.book_id),
    )


@trace_tool("return_book")
async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Return one of the calling reader's loans, unless it is late."""
    return await run_desk_operation(
        "return_book",
        arguments,
        ReturnBookInput,
        lambda desk, params: desk.return_book(params.book_id, params.borrow_id),
    )


@trace_tool("reserve_book")
async def reserve_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "reserve_book",
        arguments,
        ReserveBookInput,
        lambda desk, params: desk.reserve(params.book_id),
    )


@trace_tool("cancel_reservation")
async def cancel_reservation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "cancel_reservation",
        arguments,
        CancelReservationInput,
        lambda desk, params: desk.cancel_reservation(params.reservation_id),
    )


@trace_tool("issue_book")
async def issue_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Issue a copy at the desk; collects the reader's reservation if any."""
    return await run_desk_operation(
        "issue_book",
        arguments,
        IssueBookInput,
        lambda desk, params: desk.issue(params.book_id, params.user_id),
    )


@trace_tool("accept_return")
async def accept_return_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Accept any return at the desk, assessing the late fine if due."""
    return await run_desk_operation(
        "accept_return",
        arguments,
        AcceptReturnInput,
        lambda desk, params: desk.accept_return(params.book_id, params.borrow_id),
    )


@trace_tool("expire_reservations")
async def expire_reservations_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "expire_reservations",
        arguments,
        ExpireReservationsInput,
        lambda desk, params: desk.expire_reservations(),
    )


borrow_book = {
    "name": "borrow_book",
    "description": (
        "Borrow a copy of a book as the calling reader. Fails if the reader already "
        "holds a copy of the title or no copies are available. The due date is 14 days "
        "out, moved past Friday and Saturday closures."
    ),
    "inputSchema": BorrowBookInput.model_json_schema(),
    "handler": borrow_book_handler,
}

return_book = {
    "name": "return_book",
    "description": (
        "Return a borrowed copy as the reader who holds it. Late returns are refused "
        "and must be accepted at the library desk."
    ),
    "inputSchema": ReturnBookInput.model_json_schema(),
    "handler": return_book_handler,
}

reserve_book = {
    "name": "reserve_book",
    "description": (
        "Reserve a low-stock book (fewer than 10 copies on the shelf, but at least one). "
        "The copy must be collected within 3 open days; late collection accrues a fine."
    ),
    "inputSchema": ReserveBookInput.model_json_schema(),
    "handler": reserve_book_handler,
}

cancel_reservation = {
    "name": "cancel_reservation",
    "description": "Cancel one of the calling reader's active reservations.",
    "inputSchema": CancelReservationInput.model_json_schema(),
    "handler": cancel_reservation_handler,
}

issue_book = {
    "name": "issue_book",
    "description": (
        "Staff only. Issue a copy to a reader at the desk. The reader's own reservation "
        "on a low-stock title is marked collected; without one, a title reserved by "
        "another reader cannot be issued."
    ),
    "inputSchema": IssueBookInput.model_json_schema(),
    "handler": issue_book_handler,
}

accept_return = {
    "name": "accept_return",
    "description": (
        "Staff only. Accept a returned copy from any reader, including late returns, "
        "and record the late fine on the borrow history."
    ),
    "inputSchema": AcceptReturnInput.model_json_schema(),
    "handler": accept_return_handler,
}

expire_reservations = {
    "name": "expire_reservations",
    "description": "Staff only. Mark every active reservation past its deadline as expired.",
    "inputSchema": ExpireReservationsInput.model_json_schema(),
    "handler": expire_reservations_handler,
}
