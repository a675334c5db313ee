"""
Business-day calendar for loans and reservations.

The library is closed on Fridays and Saturdays. Due dates and reservation
deadlines never land on a closed day, and both are normalised to the last
millisecond of the day they fall on.
"""

from datetime import date, datetime, time, timedelta

# datetime.weekday(): Monday == 0 ... Sunday == 6
FRIDAY = 4
SATURDAY = 5
SUNDAY = 6

CLOSED_WEEKDAYS = frozenset({FRIDAY, SATURDAY})
GRACE_WEEKDAY = SUNDAY

LOAN_PERIOD_DAYS = 14
RESERVATION_WINDOW_DAYS = 3

END_OF_DAY = time(23, 59, 59, 999000)

_ONE_DAY = timedelta(days=1)


def as_date(value: date | datetime) -> date:
    """Drop the time component, leaving dates untouched."""
    if isinstance(value, datetime):
        return value.date()
    return value


def end_of_day(value: date | datetime) -> datetime:
    """Return 23:59:59.999 on the same calendar day, keeping tzinfo."""
    if isinstance(value, datetime):
        return datetime.combine(value.date(), END_OF_DAY, tzinfo=value.tzinfo)
    return datetime.combine(value, END_OF_DAY)


def is_closed(value: date | datetime) -> bool:
    return value.weekday() in CLOSED_WEEKDAYS


def due_date(issue_date: date | datetime) -> datetime:
    """
    Due date for a loan issued at ``issue_date``.

    Adds the loan period, then walks forward past any closed days. A loan
    issued on a Friday is due two weeks later on Sunday, not Friday.
    """
    due = issue_date + timedelta(days=LOAN_PERIOD_DAYS)
    while is_closed(due):
        due += _ONE_DAY
    return end_of_day(due)


def reservation_deadline(reservation_date: date | datetime) -> datetime:
    """
    Collection deadline for a reservation made at ``reservation_date``.

    Counts forward from the following day, skipping closed days, until the
    reservation window is used up. The reservation day itself never counts.
    """
    current = reservation_date
    counted = 0
    while counted < RESERVATION_WINDOW_DAYS:
        current += _ONE_DAY
        if not is_closed(current):
            counted += 1
    return end_of_day(current)


def open_days_between(start: date | datetime, end: date | datetime) -> int:
    """Number of open days ``d`` with ``start < d <= end`` (0 if none)."""
    first = as_date(start)
    last = as_date(end)
    count = 0
    day = first + _ONE_DAY
    while day <= last:
        if not is_closed(day):
            count += 1
        day += _ONE_DAY
    return count
