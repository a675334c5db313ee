"""
User accounts for the Library Circulation server.

Every account carries exactly one role. The role decides which circulation
operations the permission gate in :mod:`library_circulation.rules.permissions`
lets the account perform. Credentials are owned by the authentication
provider and never stored here.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, Enum):
    """The closed set of account roles."""

    READER = "reader"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


class User(BaseModel):
    """A library account as seen by the circulation engine."""

    id: str = Field(
        ...,
        description="Account identifier issued by the authentication provider",
        min_length=1,
        max_length=128,
        examples=["uid_9f2c1ab4", "reader_jane"],
    )

    email: EmailStr = Field(
        ...,
        description="Email address of the account",
        examples=["jane.doe@example.com"],
    )

    display_name: str | None = Field(
        None,
        description="Name shown to staff",
        max_length=200,
    )

    role: Role = Field(
        default=Role.READER,
        description="Role that determines permitted operations",
    )

    created_at: datetime = Field(default_factory=datetime.now)

    created_by: str | None = Field(
        None,
        description="Account that created this one, if created by staff",
    )

    @property
    def label(self) -> str:
        """Name to show in messages; falls back to the email's local part."""
        return self.display_name or self.email.split("@")[0]

    model_config = ConfigDict(
        from_attributes=True,
        validate_assignment=True,
        json_schema_extra={
            "example": {
                "id": "reader_jane",
                "email": "jane.doe@example.com",
                "display_name": "Jane Doe",
                "role": "reader",
            }
        },
    )
