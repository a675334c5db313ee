"""Tests for ledger-changing circulation operations."""

from datetime import datetime

import pytest
from sqlalchemy import delete, select

from library_circulation.database.circulation_repository import BookUpdateSchema
from library_circulation.database.errors import CirculationError
from library_circulation.database.schema import HistoryRecord as HistoryDB
from library_circulation.database.schema import Reservation as ReservationDB
from library_circulation.models.history import HistoryStatus
from library_circulation.models.reservation import ReservationStatus
from library_circulation.models.results import FailureReason
from library_circulation.rules.ledger import LedgerInvariantError

from tests.conftest import MONDAY


def reason_of(excinfo) -> FailureReason:
    return excinfo.value.reason


class TestBorrow:
    def test_borrow_takes_one_copy(self, circulation, users, make_book, fetch_book):
        book = make_book(total=3)
        receipt = circulation.borrow(book.id, "reader_tania")

        assert receipt.book_available_copies == 2
        assert receipt.loan.status == HistoryStatus.BORROWED
        assert receipt.loan.user_email == "tania@example.com"
        assert receipt.loan.due_date == datetime(2024, 6, 17, 23, 59, 59, 999000)
        assert receipt.loan.serial_number.startswith("SN-")

        stored = fetch_book(book.id)
        assert stored.available_copies == 2
        assert [r.user_id for r in stored.borrow_records] == ["reader_tania"]
        assert stored.borrow_records[0].borrow_id == receipt.loan.borrow_id

    def test_one_copy_per_reader(self, circulation, users, make_book):
        book = make_book(total=3)
        circulation.borrow(book.id, "reader_tania")

        with pytest.raises(CirculationError) as excinfo:
            circulation.borrow(book.id, "reader_tania")
        assert reason_of(excinfo) == FailureReason.ALREADY_BORROWED
        assert excinfo.value.message == "You have already borrowed this book."

    def test_no_copies_left(self, circulation, users, make_book, fetch_book):
        book = make_book(total=1)
        circulation.borrow(book.id, "reader_tania")

        with pytest.raises(CirculationError) as excinfo:
            circulation.borrow(book.id, "reader_imran")
        assert reason_of(excinfo) == FailureReason.NO_COPIES_AVAILABLE
        assert fetch_book(book.id).available_copies == 0

    def test_unknown_book(self, circulation, users):
        with pytest.raises(CirculationError) as excinfo:
            circulation.borrow("book_missing", "reader_tania")
        assert reason_of(excinfo) == FailureReason.BOOK_NOT_FOUND

    def test_unknown_user_changes_nothing(self, circulation, make_book, fetch_book):
        book = make_book(total=2)
        with pytest.raises(CirculationError) as excinfo:
            circulation.borrow(book.id, "reader_ghost")
        assert reason_of(excinfo) == FailureReason.USER_NOT_FOUND
        stored = fetch_book(book.id)
        assert stored.available_copies == 2
        assert stored.borrow_records == []

    def test_history_written_with_the_loan(self, circulation, users, make_book):
        book = make_book()
        receipt = circulation.borrow(book.id, "reader_tania")

        history = circulation.get_history("reader_tania")
        assert len(history) == 1
        assert history[0].borrow_id == receipt.loan.borrow_id
        assert history[0].status == HistoryStatus.BORROWED
        assert history[0].return_date is None


class TestReturn:
    def test_on_time_return(self, circulation, clock, users, make_book, fetch_book):
        book = make_book(total=2)
        receipt = circulation.borrow(book.id, "reader_tania")
        clock.advance(days=14)

        returned = circulation.return_book(book.id, receipt.loan.borrow_id, "reader_tania")

        assert returned.book_available_copies == 2
        assert returned.loan.status == HistoryStatus.RETURNED
        assert returned.loan.return_date == clock.now
        assert returned.fine == 0
        assert fetch_book(book.id).borrow_records == []

    def test_someone_elses_loan(self, circulation, users, make_book):
        book = make_book()
        receipt = circulation.borrow(book.id, "reader_tania")

        with pytest.raises(CirculationError) as excinfo:
            circulation.return_book(book.id, receipt.loan.borrow_id, "reader_imran")
        assert reason_of(excinfo) == FailureReason.BORROW_RECORD_NOT_FOUND

    def test_late_self_return_is_refused(self, circulation, clock, users, make_book, fetch_book):
        book = make_book(total=1)
        receipt = circulation.borrow(book.id, "reader_tania")
        clock.now = datetime(2024, 6, 18, 9, 0)

        with pytest.raises(CirculationError) as excinfo:
            circulation.return_book(book.id, receipt.loan.borrow_id, "reader_tania")
        assert reason_of(excinfo) == FailureReason.LATE_RETURN
        assert "June 17, 2024" in excinfo.value.message
        assert fetch_book(book.id).available_copies == 0

    def test_grace_until_sunday(self, circulation, clock, users, make_book):
        # Borrowed Friday 7 June, due Sunday 23 June
        clock.now = datetime(2024, 6, 7, 11, 0)
        book = make_book()
        receipt = circulation.borrow(book.id, "reader_tania")
        clock.now = datetime(2024, 6, 23, 18, 0)

        returned = circulation.return_book(book.id, receipt.loan.borrow_id, "reader_tania")
        assert returned.loan.status == HistoryStatus.RETURNED

    def test_return_then_borrow_again(self, circulation, users, make_book):
        book = make_book(total=1)
        first = circulation.borrow(book.id, "reader_tania")
        circulation.return_book(book.id, first.loan.borrow_id, "reader_tania")

        second = circulation.borrow(book.id, "reader_tania")
        assert second.loan.borrow_id != first.loan.borrow_id
        assert second.book_available_copies == 0
        history = {h.borrow_id: h.status for h in circulation.get_history("reader_tania")}
        assert history == {
            first.loan.borrow_id: HistoryStatus.RETURNED,
            second.loan.borrow_id: HistoryStatus.BORROWED,
        }

    def test_missing_history_entry_is_an_invariant_breach(
        self, circulation, db_manager, users, make_book, fetch_book
    ):
        book = make_book(total=1)
        receipt = circulation.borrow(book.id, "reader_tania")
        with db_manager.session_scope() as session:
            session.execute(
                delete(HistoryDB).where(HistoryDB.borrow_id == receipt.loan.borrow_id)
            )

        with pytest.raises(LedgerInvariantError):
            circulation.return_book(book.id, receipt.loan.borrow_id, "reader_tania")
        assert fetch_book(book.id).available_copies == 0


class TestAcceptReturn:
    def test_late_return_records_the_fine(self, circulation, clock, db_manager, users, make_book):
        book = make_book()
        receipt = circulation.borrow(book.id, "reader_tania")
        # Due Monday 17 June; Tue, Wed, Thu, Sun, Mon are chargeable
        clock.now = datetime(2024, 6, 24, 12, 0)

        returned = circulation.accept_return(
            book.id, receipt.loan.borrow_id, "librarian_nasrin"
        )

        assert returned.fine == 25
        assert returned.loan.fine_assessed == 25
        with db_manager.session_scope() as session:
            stored = session.execute(
                select(HistoryDB).where(HistoryDB.borrow_id == receipt.loan.borrow_id)
            ).scalar_one()
            assert stored.fine_assessed == 25
            assert stored.status == HistoryStatus.RETURNED

    def test_on_time_desk_return_has_no_fine(self, circulation, users, make_book):
        book = make_book()
        receipt = circulation.borrow(book.id, "reader_tania")
        returned = circulation.accept_return(
            book.id, receipt.loan.borrow_id, "librarian_nasrin"
        )
        assert returned.fine == 0

    def test_unknown_borrow(self, circulation, users, make_book):
        book = make_book()
        with pytest.raises(CirculationError) as excinfo:
            circulation.accept_return(book.id, "nope", "librarian_nasrin")
        assert reason_of(excinfo) == FailureReason.BORROW_RECORD_NOT_FOUND


class TestReserve:
    def test_reserve_low_stock(self, circulation, users, make_book):
        book = make_book(total=5)
        reservation = circulation.reserve(book.id, "reader_tania")

        assert reservation.status == ReservationStatus.ACTIVE
        assert reservation.reservation_date == MONDAY
        assert reservation.deadline == datetime(2024, 6, 6, 23, 59, 59, 999000)
        assert reservation.user_email == "tania@example.com"

    def test_not_low_stock(self, circulation, users, make_book):
        book = make_book(total=10)
        with pytest.raises(CirculationError) as excinfo:
            circulation.reserve(book.id, "reader_tania")
        assert reason_of(excinfo) == FailureReason.NOT_LOW_STOCK

    def test_out_of_stock(self, circulation, users, make_book):
        book = make_book(total=1)
        circulation.borrow(book.id, "reader_imran")
        with pytest.raises(CirculationError) as excinfo:
            circulation.reserve(book.id, "reader_tania")
        assert reason_of(excinfo) == FailureReason.OUT_OF_STOCK

    def test_one_active_reservation_per_reader(self, circulation, users, make_book):
        book = make_book(total=2)
        circulation.reserve(book.id, "reader_tania")
        with pytest.raises(CirculationError) as excinfo:
            circulation.reserve(book.id, "reader_tania")
        assert reason_of(excinfo) == FailureReason.ALREADY_RESERVED

    def test_lapsed_reservation_does_not_block(self, circulation, clock, users, make_book):
        book = make_book(total=2)
        first = circulation.reserve(book.id, "reader_tania")
        clock.now = datetime(2024, 6, 9, 10, 0)

        second = circulation.reserve(book.id, "reader_tania")

        assert second.id != first.id
        statuses = {
            view.reservation.id: view.reservation.status
            for view in circulation.list_reservations(user_id="reader_tania")
        }
        assert statuses == {
            first.id: ReservationStatus.EXPIRED,
            second.id: ReservationStatus.ACTIVE,
        }

    def test_reservation_does_not_take_a_copy(self, circulation, users, make_book, fetch_book):
        book = make_book(total=2)
        circulation.reserve(book.id, "reader_tania")
        assert fetch_book(book.id).available_copies == 2


class TestCancelReservation:
    def test_cancel_own(self, circulation, clock, users, make_book):
        book = make_book(total=2)
        reservation = circulation.reserve(book.id, "reader_tania")
        clock.advance(hours=1)

        cancelled = circulation.cancel_reservation(reservation.id, "reader_tania")

        assert cancelled.status == ReservationStatus.CANCELLED
        assert cancelled.cancelled_at == clock.now

    def test_cannot_cancel_someone_elses(self, circulation, users, make_book):
        book = make_book(total=2)
        reservation = circulation.reserve(book.id, "reader_tania")
        with pytest.raises(CirculationError) as excinfo:
            circulation.cancel_reservation(reservation.id, "reader_imran")
        assert reason_of(excinfo) == FailureReason.RESERVATION_NOT_FOUND

    def test_cannot_cancel_twice(self, circulation, users, make_book):
        book = make_book(total=2)
        reservation = circulation.reserve(book.id, "reader_tania")
        circulation.cancel_reservation(reservation.id, "reader_tania")

        with pytest.raises(CirculationError) as excinfo:
            circulation.cancel_reservation(reservation.id, "reader_tania")
        assert reason_of(excinfo) == FailureReason.RESERVATION_NOT_ACTIVE
        assert excinfo.value.message == "Reservation is already cancelled."

    def test_unknown_reservation(self, circulation, users):
        with pytest.raises(CirculationError) as excinfo:
            circulation.cancel_reservation("reservation_000000000000", "reader_tania")
        assert reason_of(excinfo) == FailureReason.RESERVATION_NOT_FOUND


class TestManualIssue:
    def test_issue_without_reservations(self, circulation, users, make_book):
        book = make_book(total=20)
        receipt = circulation.manual_issue(book.id, "reader_tania", "librarian_nasrin")

        assert receipt.loan.issued_by == "librarian_nasrin"
        assert receipt.collected_reservation is None
        assert receipt.book_available_copies == 19

    def test_blocked_by_another_readers_reservation(
        self, circulation, users, make_book, fetch_book
    ):
        book = make_book(total=3)
        circulation.reserve(book.id, "reader_imran")

        with pytest.raises(CirculationError) as excinfo:
            circulation.manual_issue(book.id, "reader_tania", "librarian_nasrin")
        assert reason_of(excinfo) == FailureReason.RESERVED_BY_OTHER
        assert "imran@example.com" in excinfo.value.message
        assert fetch_book(book.id).available_copies == 3

    def test_collects_own_reservation(self, circulation, clock, users, make_book):
        book = make_book(total=3)
        reservation = circulation.reserve(book.id, "reader_tania")
        clock.advance(days=1)

        receipt = circulation.manual_issue(book.id, "reader_tania", "librarian_nasrin")

        collected = receipt.collected_reservation
        assert collected.id == reservation.id
        assert collected.status == ReservationStatus.COLLECTED
        assert collected.collected_by == "librarian_nasrin"
        assert collected.collected_at == clock.now

    def test_own_reservation_wins_over_earlier_reservations(
        self, circulation, users, make_book, fetch_book
    ):
        book = make_book(total=3)
        first = circulation.reserve(book.id, "reader_imran")
        mine = circulation.reserve(book.id, "reader_tania")

        receipt = circulation.manual_issue(book.id, "reader_tania", "librarian_nasrin")

        assert receipt.collected_reservation.id == mine.id
        assert fetch_book(book.id).available_copies == 2
        [still_waiting] = circulation.list_reservations(
            user_id="reader_imran", status=ReservationStatus.ACTIVE
        )
        assert still_waiting.reservation.id == first.id

    def test_reservation_check_skipped_when_stock_is_plentiful(
        self, circulation, users, make_book
    ):
        book = make_book(total=10)
        circulation.borrow(book.id, "reader_imran")
        reservation = circulation.reserve(book.id, "reader_imran")
        circulation.update_book(book.id, BookUpdateSchema(total_copies=12))

        # 11 on the shelf again, so Imran's reservation no longer gates the desk
        receipt = circulation.manual_issue(book.id, "reader_tania", "librarian_nasrin")
        assert receipt.collected_reservation is None
        [view] = circulation.list_reservations(user_id="reader_imran")
        assert view.reservation.id == reservation.id
        assert view.reservation.status == ReservationStatus.ACTIVE

    def test_already_borrowed_keeps_reservation_active(self, circulation, users, make_book):
        book = make_book(total=3)
        circulation.borrow(book.id, "reader_tania")
        reservation = circulation.reserve(book.id, "reader_tania")

        with pytest.raises(CirculationError) as excinfo:
            circulation.manual_issue(book.id, "reader_tania", "librarian_nasrin")
        assert reason_of(excinfo) == FailureReason.ALREADY_BORROWED

        views = circulation.list_reservations(user_id="reader_tania")
        assert views[0].reservation.id == reservation.id
        assert views[0].reservation.status == ReservationStatus.ACTIVE

    def test_unknown_user(self, circulation, users, make_book):
        book = make_book()
        with pytest.raises(CirculationError) as excinfo:
            circulation.manual_issue(book.id, "reader_ghost", "librarian_nasrin")
        assert reason_of(excinfo) == FailureReason.USER_NOT_FOUND


class TestExpireReservations:
    def test_only_lapsed_reservations_expire(self, circulation, clock, users, make_book):
        first = make_book(total=2, title="Gitanjali")
        second = make_book(total=2, title="Debdas")
        lapsed = circulation.reserve(first.id, "reader_tania")
        clock.now = datetime(2024, 6, 6, 12, 0)
        fresh = circulation.reserve(second.id, "reader_imran")
        clock.now = datetime(2024, 6, 7, 9, 0)

        expired = circulation.expire_reservations()

        assert [r.id for r in expired] == [lapsed.id]
        assert expired[0].status == ReservationStatus.EXPIRED
        active = circulation.list_reservations(status=ReservationStatus.ACTIVE)
        assert [view.reservation.id for view in active] == [fresh.id]

    def test_nothing_to_expire(self, circulation, users):
        assert circulation.expire_reservations() == []


class TestCatalogEdits:
    def test_raising_total_adds_to_the_shelf(self, circulation, users, make_book):
        book = make_book(total=3)
        circulation.borrow(book.id, "reader_tania")

        updated = circulation.update_book(book.id, BookUpdateSchema(total_copies=5))

        assert updated.total_copies == 5
        assert updated.available_copies == 4

    def test_cannot_drop_below_copies_on_loan(self, circulation, users, make_book, fetch_book):
        book = make_book(total=2)
        circulation.borrow(book.id, "reader_tania")
        circulation.borrow(book.id, "reader_imran")

        with pytest.raises(CirculationError) as excinfo:
            circulation.update_book(book.id, BookUpdateSchema(total_copies=1))
        assert reason_of(excinfo) == FailureReason.COPIES_ON_LOAN
        assert fetch_book(book.id).total_copies == 2

    def test_shrinking_to_exactly_the_loans(self, circulation, users, make_book):
        book = make_book(total=4)
        circulation.borrow(book.id, "reader_tania")
        updated = circulation.update_book(book.id, BookUpdateSchema(total_copies=1))
        assert (updated.total_copies, updated.available_copies) == (1, 0)

    def test_metadata_only(self, circulation, make_book):
        book = make_book(total=2)
        updated = circulation.update_book(
            book.id, BookUpdateSchema(title="  Aranyak  ", rack="B-4")
        )
        assert updated.title == "Aranyak"
        assert updated.rack == "B-4"
        assert updated.available_copies == 2

    def test_delete_keeps_history_and_drops_reservations(
        self, circulation, db_manager, users, make_book, fetch_book
    ):
        book = make_book(total=2)
        receipt = circulation.borrow(book.id, "reader_tania")
        circulation.return_book(book.id, receipt.loan.borrow_id, "reader_tania")
        circulation.reserve(book.id, "reader_imran")

        deleted = circulation.delete_book(book.id)

        assert deleted.id == book.id
        assert fetch_book(book.id) is None
        assert len(circulation.get_history("reader_tania")) == 1
        with db_manager.session_scope() as session:
            assert session.execute(select(ReservationDB)).scalars().all() == []

    def test_delete_refused_while_on_loan(self, circulation, users, make_book, fetch_book):
        book = make_book(total=2)
        circulation.borrow(book.id, "reader_tania")
        with pytest.raises(CirculationError) as excinfo:
            circulation.delete_book(book.id)
        assert reason_of(excinfo) == FailureReason.COPIES_ON_LOAN
        assert fetch_book(book.id) is not None


class TestReaderQueries:
    def test_active_loans_show_overdue_state(self, circulation, clock, users, make_book):
        book = make_book(title="Padma Nadir Majhi")
        circulation.borrow(book.id, "reader_tania")
        clock.now = datetime(2024, 6, 24, 10, 0)

        [loan] = circulation.get_active_loans("reader_tania")

        assert loan.book_title == "Padma Nadir Majhi"
        assert loan.is_overdue
        assert loan.days_remaining == -7
        assert loan.accrued_fine == 25

    def test_reservation_view_derives_expiry_and_fine(self, circulation, clock, users, make_book):
        book = make_book(total=2)
        circulation.reserve(book.id, "reader_tania")
        clock.now = datetime(2024, 6, 9, 10, 0)

        [view] = circulation.list_reservations(user_id="reader_tania")

        assert view.reservation.status == ReservationStatus.ACTIVE
        assert view.effective_status == ReservationStatus.EXPIRED
        assert view.accrued_fine == 5
        assert circulation.list_reservations(status=ReservationStatus.EXPIRED) == [view]
