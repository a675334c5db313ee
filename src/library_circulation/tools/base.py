"""
Shared plumbing for the circulation tools.

Every tool follows the same lifecycle:

1. validate the raw arguments against the tool's input schema
2. resolve the acting account and its current role
3. run the operation on a CirculationDesk in a worker thread
4. turn the TransactionResult (or a store outage) into an MCP response
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from ..database.errors import StoreUnavailableError
from ..database.session import get_db_manager
from ..models.results import FailureReason, TransactionResult
from ..services.context import resolve_caller
from ..services.desk import CirculationDesk

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE = "store_unavailable"


class ActorInput(BaseModel):
    """Fields common to every tool input."""

    actor_id: str = Field(
        ...,
        description="Account identifier of the user performing the operation",
        min_length=1,
        max_length=128,
        examples=["reader_jane", "librarian_ali"],
    )


P = TypeVar("P", bound=ActorInput)


def error_response(text: str, reason: str) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": text}],
        "data": {"reason": reason},
    }


def result_response(result: TransactionResult) -> dict[str, Any]:
    if not result.success:
        return error_response(result.message, result.reason.value)
    return {
        "content": [{"type": "text", "text": result.message}],
        "data": result.data,
    }


async def run_desk_operation(
    tool_name: str,
    arguments: dict[str, Any],
    input_model: type[P],
    operation: Callable[[CirculationDesk, P], TransactionResult],
) -> dict[str, Any]:
    """Validate, authorize and execute one tool call."""
    try:
        params = input_model.model_validate(arguments or {})
    except ValidationError as e:
        logger.warning("Invalid %s parameters: %s", tool_name, e)
        return error_response(
            f"Invalid {tool_name} parameters: {e}", FailureReason.INVALID_REQUEST.value
        )

    try:
        db_manager = get_db_manager()
        caller = await asyncio.to_thread(resolve_caller, db_manager, params.actor_id)
        if caller is None:
            logger.info("%s called by unknown account %s", tool_name, params.actor_id)
            return error_response(
                "Permission denied: unknown account.", FailureReason.PERMISSION_DENIED.value
            )

        desk = CirculationDesk(db_manager, caller)
        result = await asyncio.to_thread(operation, desk, params)
    except StoreUnavailableError as e:
        logger.warning("%s failed, store unavailable: %s", tool_name, e)
        return error_response(
            f"The library database is temporarily unavailable. Please try again. ({e})",
            STORE_UNAVAILABLE,
        )
    except Exception as e:
        logger.exception("Unexpected error in %s tool", tool_name)
        return error_response(f"An unexpected error occurred: {e!s}", "internal_error")

    return result_response(result)
