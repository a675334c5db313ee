"""
The circulation desk: permission gate in front of every write.

Each public method checks the caller's role against the permission table,
runs the operation and folds expected failures into a TransactionResult.
Store outages (StoreUnavailableError) and ledger invariant breaches are not
expected failures and propagate to the caller.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from ..database.book_repository import BookCreateSchema, BookRepository
from ..database.circulation_repository import BookUpdateSchema, CirculationRepository
from ..database.errors import CirculationError, DuplicateError, NotFoundError
from ..database.session import DatabaseManager
from ..database.user_repository import UserCreateSchema, UserRepository
from ..models.results import FailureReason, TransactionResult
from ..models.user import Role
from ..rules.fines import DAILY_FINE_RATE
from ..rules.permissions import (
    SELF_ROLE_CHANGE_MESSAGE,
    Action,
    account_creation_action,
    can_change_role,
    can_create_account,
    denial_message,
    is_allowed,
)
from .context import CallerContext

logger = logging.getLogger(__name__)


def _long_date(value: datetime) -> str:
    return f"{value:%B %d, %Y}"


class CirculationDesk:
    """
    Front desk for one caller.

    A desk is cheap; tools build a new one per invocation with the caller's
    freshly resolved context.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        caller: CallerContext,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_manager = db_manager
        self.caller = caller
        self.clock = clock
        self.circulation = CirculationRepository(db_manager, clock)

    def _deny(self, action: Action, message: str | None = None) -> TransactionResult:
        logger.info(
            "Denied %s for %s (%s)", action.value, self.caller.user_id, self.caller.role.value
        )
        return TransactionResult.fail(
            FailureReason.PERMISSION_DENIED, message or denial_message(action)
        )

    def _perform(
        self, action: Action, operation: Callable[[], TransactionResult]
    ) -> TransactionResult:
        if not is_allowed(action, self.caller.role):
            return self._deny(action)
        try:
            return operation()
        except CirculationError as e:
            logger.info("%s rejected for %s: %s", action.value, self.caller.user_id, e.message)
            return TransactionResult.fail(e.reason, e.message)

    # === Reader self-service ===

    def borrow(self, book_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            receipt = self.circulation.borrow(book_id, self.caller.user_id)
            return TransactionResult.ok(
                f'Book "{receipt.loan.book_title}" borrowed successfully! '
                f"Due date: {_long_date(receipt.loan.due_date)}",
                receipt=receipt.model_dump(mode="json"),
            )

        return self._perform(Action.BORROW, operation)

    def return_book(self, book_id: str, borrow_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            receipt = self.circulation.return_book(book_id, borrow_id, self.caller.user_id)
            return TransactionResult.ok(
                f'Book "{receipt.loan.book_title}" returned successfully!',
                receipt=receipt.model_dump(mode="json"),
            )

        return self._perform(Action.RETURN, operation)

    def reserve(self, book_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            reservation = self.circulation.reserve(book_id, self.caller.user_id)
            return TransactionResult.ok(
                f'Book "{reservation.book_title}" reserved successfully! '
                f"Please collect it by {_long_date(reservation.deadline)}. "
                f"Late collection will incur a fine of ৳{DAILY_FINE_RATE} per day.",
                reservation=reservation.model_dump(mode="json"),
            )

        return self._perform(Action.RESERVE, operation)

    def cancel_reservation(self, reservation_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            reservation = self.circulation.cancel_reservation(
                reservation_id, self.caller.user_id
            )
            return TransactionResult.ok(
                f'Reservation for "{reservation.book_title}" cancelled.',
                reservation=reservation.model_dump(mode="json"),
            )

        return self._perform(Action.CANCEL_RESERVATION, operation)

    # === Staff circulation ===

    def issue(self, book_id: str, user_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            receipt = self.circulation.manual_issue(book_id, user_id, self.caller.user_id)
            return TransactionResult.ok(
                f'Book "{receipt.loan.book_title}" issued to {receipt.loan.user_email} '
                f"successfully! Due date: {_long_date(receipt.loan.due_date)}",
                receipt=receipt.model_dump(mode="json"),
            )

        return self._perform(Action.MANUAL_ISSUE, operation)

    def accept_return(self, book_id: str, borrow_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            receipt = self.circulation.accept_return(book_id, borrow_id, self.caller.user_id)
            message = (
                f'Book "{receipt.loan.book_title}" returned by {receipt.loan.user_email}.'
            )
            if receipt.fine:
                message += f" Late return fine assessed: ৳{receipt.fine}."
            return TransactionResult.ok(message, receipt=receipt.model_dump(mode="json"))

        return self._perform(Action.ACCEPT_RETURN, operation)

    def expire_reservations(self) -> TransactionResult:
        def operation() -> TransactionResult:
            expired = self.circulation.expire_reservations()
            return TransactionResult.ok(
                f"Expired {len(expired)} lapsed reservation(s).",
                expired=[reservation.model_dump(mode="json") for reservation in expired],
            )

        return self._perform(Action.EXPIRE_RESERVATIONS, operation)

    # === Catalog ===

    def add_book(self, data: BookCreateSchema) -> TransactionResult:
        def operation() -> TransactionResult:
            with self.db_manager.session_scope() as session:
                book = BookRepository(session).create(data, now=self.clock())
            return TransactionResult.ok(
                f'Book "{book.title}" added with {book.total_copies} copies.',
                book=book.model_dump(mode="json"),
            )

        return self._perform(Action.MANAGE_BOOKS, operation)

    def update_book(self, book_id: str, changes: BookUpdateSchema) -> TransactionResult:
        def operation() -> TransactionResult:
            book = self.circulation.update_book(book_id, changes)
            return TransactionResult.ok(
                f'Book "{book.title}" updated.', book=book.model_dump(mode="json")
            )

        return self._perform(Action.MANAGE_BOOKS, operation)

    def delete_book(self, book_id: str) -> TransactionResult:
        def operation() -> TransactionResult:
            book = self.circulation.delete_book(book_id)
            return TransactionResult.ok(
                f'Book "{book.title}" deleted.', book=book.model_dump(mode="json")
            )

        return self._perform(Action.MANAGE_BOOKS, operation)

    # === Accounts ===

    def create_account(
        self,
        user_id: str,
        email: str,
        role: Role,
        display_name: str | None = None,
    ) -> TransactionResult:
        if not is_allowed(Action.CREATE_READER, self.caller.role):
            return self._deny(Action.CREATE_READER)
        if not can_create_account(self.caller.role, role):
            return self._deny(account_creation_action(role))

        try:
            data = UserCreateSchema(
                id=user_id,
                email=email,
                display_name=display_name,
                role=role,
                created_by=self.caller.user_id,
            )
        except ValidationError as e:
            if any(error["loc"] == ("email",) for error in e.errors()):
                return TransactionResult.fail(
                    FailureReason.INVALID_REQUEST, "Invalid email address."
                )
            return TransactionResult.fail(
                FailureReason.INVALID_REQUEST, f"Invalid account details: {e}"
            )

        try:
            with self.db_manager.session_scope() as session:
                user = UserRepository(session).create(data, now=self.clock())
        except DuplicateError as e:
            return TransactionResult.fail(FailureReason.DUPLICATE_ACCOUNT, str(e))

        return TransactionResult.ok(
            f"{role.value.capitalize()} account created for {user.email}.",
            user=user.model_dump(mode="json"),
        )

    def change_role(self, user_id: str, role: Role) -> TransactionResult:
        if not is_allowed(Action.CHANGE_ROLE, self.caller.role):
            return self._deny(Action.CHANGE_ROLE)
        if not can_change_role(self.caller.user_id, self.caller.role, user_id):
            return self._deny(Action.CHANGE_ROLE, SELF_ROLE_CHANGE_MESSAGE)

        try:
            with self.db_manager.session_scope() as session:
                user = UserRepository(session).update_role(user_id, role)
        except NotFoundError as e:
            return TransactionResult.fail(FailureReason.USER_NOT_FOUND, str(e))

        return TransactionResult.ok(
            f"Role of {user.email} changed to {role.value}.", user=user.model_dump(mode="json")
        )
