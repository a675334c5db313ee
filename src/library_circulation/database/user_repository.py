"""
User repository for the Library Circulation server.

Accounts are keyed by the identifier the authentication provider issued.
Passwords never reach this table.
"""

import logging
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func, select

from ..models.user import Role
from ..models.user import User as UserModel
from .errors import DuplicateError, NotFoundError
from .repository import BaseRepository
from .schema import User as UserDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class UserCreateSchema(BaseModel):
    id: str = Field(..., min_length=1, max_length=128)
    email: EmailStr
    display_name: str | None = Field(None, max_length=200)
    role: Role = Role.READER
    created_by: str | None = None


class UserRepository(BaseRepository[UserDB, UserModel]):
    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return UserModel

    def create(self, data: UserCreateSchema, now: datetime | None = None) -> UserModel:
        """
        Create an account.

        Raises:
            DuplicateError: If the id or the email is already registered
        """
        email = data.email.lower()
        if self.get_by_email(email) is not None:
            raise DuplicateError("This email is already registered.")
        if self.exists(data.id):
            raise DuplicateError(f"User {data.id} already exists.")

        db_obj = UserDB(
            id=data.id,
            email=email,
            display_name=data.display_name,
            role=data.role,
            created_at=now or datetime.now(),
            created_by=data.created_by,
        )
        self.session.add(db_obj)
        safe_commit(self.session, "create User")
        logger.info("Created %s account %s", data.role.value, data.id)
        return self._to_response_model(db_obj)

    def get_by_email(self, email: str) -> UserModel | None:
        query = select(UserDB).where(func.lower(UserDB.email) == email.lower())
        db_obj = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get user by email",
        )
        return self._to_response_model(db_obj) if db_obj else None

    def update_role(self, user_id: str, role: Role) -> UserModel:
        """
        Raises:
            NotFoundError: If the account does not exist
        """
        db_obj = safe_query(
            self.session, lambda s: s.get(UserDB, user_id), "Failed to get user for update"
        )
        if db_obj is None:
            raise NotFoundError("User not found.")
        db_obj.role = role
        safe_commit(self.session, "update User role")
        logger.info("Changed role of %s to %s", user_id, role.value)
        return self._to_response_model(db_obj)
