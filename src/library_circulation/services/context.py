"""Caller identity, resolved from the users table on every invocation."""

from pydantic import BaseModel, ConfigDict

from ..database.schema import User as UserDB
from ..database.session import DatabaseManager, safe_query
from ..models.user import Role


class CallerContext(BaseModel):
    """Who is invoking an operation, and with which role right now."""

    user_id: str
    email: str
    role: Role

    model_config = ConfigDict(frozen=True)


def resolve_caller(db_manager: DatabaseManager, user_id: str) -> CallerContext | None:
    """
    Look up the caller's current role.

    Roles are read fresh for every call so a role change takes effect on the
    caller's next operation. Returns None for unknown accounts.
    """
    with db_manager.session_scope() as session:
        user = safe_query(session, lambda s: s.get(UserDB, user_id), "Failed to resolve caller")
        if user is None:
            return None
        return CallerContext(user_id=user.id, email=user.email, role=user.role)
