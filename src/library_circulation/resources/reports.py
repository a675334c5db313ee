"""
Staff report resources.

- library://reports/fines: outstanding overdue fines per reader
- library://reports/inventory: stock totals per rack and genre, low and out of stock
"""

import logging
from datetime import date
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.report_repository import ReportRepository
from ..database.session import session_scope
from ..observability import trace_resource

logger = logging.getLogger(__name__)


@trace_resource("reports.fines")
async def fines_report_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            report = ReportRepository(session).fines_report(date.today())
        return {
            **report.model_dump(mode="json"),
            "total_fines": report.total_fines,
            "readers_with_fines": report.readers_with_fines,
            "overdue_books": report.overdue_books,
        }
    except Exception as e:
        logger.exception("Error in reports/fines resource")
        raise ResourceError(f"Failed to build fines report: {e!s}") from e


@trace_resource("reports.inventory")
async def inventory_report_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            report = ReportRepository(session).inventory_analytics()
        return report.model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in reports/inventory resource")
        raise ResourceError(f"Failed to build inventory report: {e!s}") from e


report_resources: list[dict[str, Any]] = [
    {
        "uri": "library://reports/fines",
        "name": "Fines Report",
        "description": (
            "Overdue fines per reader at ৳5 per open day, with the overdue titles "
            "behind each total"
        ),
        "mime_type": "application/json",
        "handler": fines_report_handler,
    },
    {
        "uri": "library://reports/inventory",
        "name": "Inventory Analytics",
        "description": "Copy totals by rack and genre, plus low-stock and out-of-stock titles",
        "mime_type": "application/json",
        "handler": inventory_report_handler,
    },
]
