"""
Reader-facing circulation resources.

Everything here is derived at read time: days remaining and overdue flags on
loans, and the effective status and accrued fine of reservations. A
reservation stored as active whose deadline has passed is shown as expired.
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.circulation_repository import CirculationRepository
from ..database.session import get_db_manager
from ..models.reservation import ReservationStatus
from ..observability import trace_resource

logger = logging.getLogger(__name__)


def _repository() -> CirculationRepository:
    return CirculationRepository(get_db_manager())


@trace_resource("readers.loans")
async def reader_loans_handler(user_id: str) -> dict[str, Any]:
    try:
        loans = _repository().get_active_loans(user_id)
        return {
            "user_id": user_id,
            "loans": [loan.model_dump(mode="json") for loan in loans],
            "overdue_count": sum(1 for loan in loans if loan.is_overdue),
        }
    except Exception as e:
        logger.exception("Error in readers/{user_id}/loans resource")
        raise ResourceError(f"Failed to retrieve loans: {e!s}") from e


@trace_resource("readers.history")
async def reader_history_handler(user_id: str) -> dict[str, Any]:
    try:
        history = _repository().get_history(user_id)
        return {
            "user_id": user_id,
            "history": [record.model_dump(mode="json") for record in history],
            "total_borrowed": len(history),
        }
    except Exception as e:
        logger.exception("Error in readers/{user_id}/history resource")
        raise ResourceError(f"Failed to retrieve borrow history: {e!s}") from e


@trace_resource("readers.reservations")
async def reader_reservations_handler(user_id: str) -> dict[str, Any]:
    try:
        views = _repository().list_reservations(user_id=user_id)
        return {
            "user_id": user_id,
            "reservations": [view.model_dump(mode="json") for view in views],
            "total_fine": sum(view.accrued_fine for view in views),
        }
    except Exception as e:
        logger.exception("Error in readers/{user_id}/reservations resource")
        raise ResourceError(f"Failed to retrieve reservations: {e!s}") from e


@trace_resource("reservations.by_status")
async def reservations_by_status_handler(status: str) -> dict[str, Any]:
    """Every reader's reservations in one effective status, for the desk."""
    try:
        wanted = ReservationStatus(status)
    except ValueError as e:
        raise ResourceError(f"Unknown reservation status: {status}") from e
    try:
        views = _repository().list_reservations(status=wanted)
        return {
            "status": wanted.value,
            "reservations": [view.model_dump(mode="json") for view in views],
            "count": len(views),
        }
    except Exception as e:
        logger.exception("Error in reservations/{status} resource")
        raise ResourceError(f"Failed to retrieve reservations: {e!s}") from e


reader_resources: list[dict[str, Any]] = [
    {
        "uri_template": "library://readers/{user_id}/loans",
        "name": "Reader Loans",
        "description": "Copies a reader currently holds, with due dates and overdue flags",
        "mime_type": "application/json",
        "handler": reader_loans_handler,
    },
    {
        "uri_template": "library://readers/{user_id}/history",
        "name": "Reader Borrow History",
        "description": "Every loan a reader has taken, newest first",
        "mime_type": "application/json",
        "handler": reader_history_handler,
    },
    {
        "uri_template": "library://readers/{user_id}/reservations",
        "name": "Reader Reservations",
        "description": (
            "A reader's reservations with their effective status and any "
            "late-collection fine"
        ),
        "mime_type": "application/json",
        "handler": reader_reservations_handler,
    },
    {
        "uri_template": "library://reservations/{status}",
        "name": "Reservations by Status",
        "description": (
            "All reservations in one status (active, collected, expired or cancelled). "
            "Lapsed reservations count as expired even before they are swept."
        ),
        "mime_type": "application/json",
        "handler": reservations_by_status_handler,
    },
]
