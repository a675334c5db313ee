"""Logfire tracing for MCP tools and resources."""

import functools
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

from .config import LibraryConfig, get_config

logger = logging.getLogger(__name__)

_CIRCULATION_TOOLS = frozenset(
    {
        "borrow_book",
        "return_book",
        "reserve_book",
        "cancel_reservation",
        "issue_book",
        "accept_return",
        "expire_reservations",
    }
)


def initialize_observability(config: LibraryConfig | None = None) -> bool:
    """
    Configure logfire for this process.

    Spans are always created; they only leave the process when observability
    is enabled and a LOGFIRE_TOKEN is present. Returns whether export is on.
    """
    config = config or get_config()

    logfire.configure(
        service_name=config.server_name,
        service_version=config.server_version,
        environment=config.environment,
        send_to_logfire="if-token-present" if config.observability_enabled else False,
        console=False,
    )

    if config.observability_enabled:
        logger.info("Logfire export enabled for environment %s", config.environment)
    else:
        logger.debug("Observability disabled via configuration")
    return config.observability_enabled


def trace_tool(tool_name: str):
    """Decorator to trace MCP tool execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(arguments: dict[str, Any]) -> dict[str, Any]:
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()
                _add_attributes(span, "input", arguments or {})

                try:
                    result = await func(arguments)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

                span.set_attribute("tool.success", not result.get("isError", False))
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                reason = (result.get("data") or {}).get("reason")
                if reason:
                    span.set_attribute("tool.failure_reason", reason)
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                _add_attributes(span, "param", kwargs)
                result = await func(*args, **kwargs)
                if isinstance(result, dict):
                    span.set_attribute("result.keys", len(result))
                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if tool_name in _CIRCULATION_TOOLS:
        return "circulation"
    if tool_name.endswith("_book"):
        return "catalog"
    return "accounts"


def _add_attributes(span, prefix: str, data: dict):
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
