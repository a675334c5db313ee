"""Caller resolution and the permission-gated circulation desk."""

from .context import CallerContext, resolve_caller
from .desk import CirculationDesk

__all__ = ["CallerContext", "CirculationDesk", "resolve_caller"]
