"""
Role/permission gate.

A static table of which role may perform which action. Every circulation,
catalog and account operation asks this module before touching the store,
using the caller's role as resolved at invocation time.
"""

from enum import Enum
from typing import assert_never

from ..models.user import Role


class Action(str, Enum):
    BORROW = "borrow"
    RETURN = "return"
    RESERVE = "reserve"
    CANCEL_RESERVATION = "cancel_reservation"
    MANUAL_ISSUE = "manual_issue"
    ACCEPT_RETURN = "accept_return"
    EXPIRE_RESERVATIONS = "expire_reservations"
    MANAGE_BOOKS = "manage_books"
    CREATE_READER = "create_reader"
    CREATE_STAFF = "create_staff"
    CHANGE_ROLE = "change_role"


_READER_ACTIONS = frozenset(
    {Action.BORROW, Action.RETURN, Action.RESERVE, Action.CANCEL_RESERVATION}
)

_LIBRARIAN_ACTIONS = frozenset(
    {
        Action.MANUAL_ISSUE,
        Action.ACCEPT_RETURN,
        Action.EXPIRE_RESERVATIONS,
        Action.MANAGE_BOOKS,
        Action.CREATE_READER,
    }
)

_ADMIN_ACTIONS = _LIBRARIAN_ACTIONS | {Action.CREATE_STAFF, Action.CHANGE_ROLE}

_DENIAL_MESSAGES = {
    Action.BORROW: "Permission denied: Only Readers can borrow books.",
    Action.RETURN: "Permission denied: Only Readers can return their own books.",
    Action.RESERVE: "Permission denied: Only Readers can reserve books.",
    Action.CANCEL_RESERVATION: "Permission denied: Only Readers can cancel reservations.",
    Action.MANUAL_ISSUE: "Permission denied: Only Librarians and Admins can issue books.",
    Action.ACCEPT_RETURN: "Permission denied: Only Librarians and Admins can accept returns.",
    Action.EXPIRE_RESERVATIONS: (
        "Permission denied: Only Librarians and Admins can expire reservations."
    ),
    Action.MANAGE_BOOKS: "Permission denied: Only Librarians and Admins can manage books.",
    Action.CREATE_READER: "Permission denied: Only Librarians and Admins can add users.",
    Action.CREATE_STAFF: "Permission denied: Librarians can only add Readers.",
    Action.CHANGE_ROLE: "Permission denied: Only Admins can change user roles.",
}

SELF_ROLE_CHANGE_MESSAGE = "Cannot change your own role."


def is_allowed(action: Action, role: Role) -> bool:
    match role:
        case Role.READER:
            return action in _READER_ACTIONS
        case Role.LIBRARIAN:
            return action in _LIBRARIAN_ACTIONS
        case Role.ADMIN:
            return action in _ADMIN_ACTIONS
        case _:
            assert_never(role)


def denial_message(action: Action) -> str:
    return _DENIAL_MESSAGES[action]


def account_creation_action(new_role: Role) -> Action:
    """Action a caller needs in order to create an account with ``new_role``."""
    return Action.CREATE_READER if new_role is Role.READER else Action.CREATE_STAFF


def can_create_account(caller_role: Role, new_role: Role) -> bool:
    return is_allowed(account_creation_action(new_role), caller_role)


def can_change_role(caller_id: str, caller_role: Role, target_id: str) -> bool:
    """Admins may change any role except their own."""
    return is_allowed(Action.CHANGE_ROLE, caller_role) and caller_id != target_id
