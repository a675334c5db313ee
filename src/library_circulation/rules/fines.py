"""
Fine calculations.

Three variants share one fixed daily rate:

- return fine: a copy due on a closed day may come back until the end of the
  following Sunday before it counts as late
- reservation fine: charged per open day a reservation stays uncollected
  after its deadline
- overdue fine: charged per open day a loan stays out past its due date

Lateness is always compared on whole days; the time component of both
arguments is ignored.
"""

from datetime import date, datetime, timedelta

from .calendar import GRACE_WEEKDAY, as_date, end_of_day, is_closed, open_days_between

# Taka per open day
DAILY_FINE_RATE = 5


def return_grace_deadline(due: date | datetime) -> datetime:
    """Last moment a return is on time for a loan due on ``due``."""
    deadline = due
    if is_closed(due):
        while deadline.weekday() != GRACE_WEEKDAY:
            deadline += timedelta(days=1)
    return end_of_day(deadline)


def is_return_late(due: date | datetime, now: date | datetime) -> bool:
    """True once ``now`` falls on a day after the grace deadline."""
    return as_date(now) > as_date(return_grace_deadline(due))


def days_late(reference: date | datetime, today: date | datetime) -> int:
    """Open days elapsed after ``reference`` up to and including ``today``."""
    if as_date(today) <= as_date(reference):
        return 0
    return open_days_between(reference, today)


def return_fine(due: date | datetime, today: date | datetime) -> int:
    """Fine owed when a copy due on ``due`` comes back on ``today``."""
    if not is_return_late(due, today):
        return 0
    return days_late(return_grace_deadline(due), today) * DAILY_FINE_RATE


def reservation_fine(deadline: date | datetime, today: date | datetime) -> int:
    return days_late(deadline, today) * DAILY_FINE_RATE


def overdue_fine(due: date | datetime, today: date | datetime) -> int:
    return days_late(due, today) * DAILY_FINE_RATE
