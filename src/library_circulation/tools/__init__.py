"""
MCP tools for the Library Circulation server.

Tools are the only entry points that change library state. Each one is a
dictionary with the tool's name, description, JSON input schema and async
handler; the server registers everything in ``all_tools``.
"""

from .accounts import change_user_role, create_account
from .catalog import add_book, delete_book, update_book
from .circulation import (
    accept_return,
    borrow_book,
    cancel_reservation,
    expire_reservations,
    issue_book,
    reserve_book,
    return_book,
)

all_tools = [
    borrow_book,
    return_book,
    reserve_book,
    cancel_reservation,
    issue_book,
    accept_return,
    expire_reservations,
    add_book,
    update_book,
    delete_book,
    create_account,
    change_user_role,
]

__all__ = [
    "accept_return",
    "add_book",
    "all_tools",
    "borrow_book",
    "cancel_reservation",
    "change_user_role",
    "create_account",
    "delete_book",
    "expire_reservations",
    "issue_book",
    "reserve_book",
    "return_book",
    "update_book",
]
