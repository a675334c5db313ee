"""
Database layer for the Library Circulation server.

- schema: SQLAlchemy tables
- session: engine/session lifecycle and the process-wide DatabaseManager
- serialized: per-book serialized access with optimistic retry
- *_repository: data access returning pydantic models
"""

from .errors import (
    CirculationError,
    DuplicateError,
    NotFoundError,
    RepositoryException,
    StoreUnavailableError,
    TransactionConflictError,
)
from .session import DatabaseManager, get_db_manager, session_scope

__all__ = [
    "CirculationError",
    "DatabaseManager",
    "DuplicateError",
    "NotFoundError",
    "RepositoryException",
    "StoreUnavailableError",
    "TransactionConflictError",
    "get_db_manager",
    "session_scope",
]
