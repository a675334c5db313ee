"""
Account tools: creating accounts and changing roles.

Librarians may only create reader accounts. Only admins create staff
accounts or change roles, and nobody can change their own role.
"""

from typing import Any

from pydantic import Field

from ..models.user import Role
from ..observability import trace_tool
from .base import ActorInput, run_desk_operation


class CreateAccountInput(ActorInput):
    """Input schema for the create_account tool."""

    user_id: str = Field(
        ...,
        description="Identifier issued by the authentication provider for the new account",
        min_length=1,
        max_length=128,
        examples=["reader_jane"],
    )
    # Validated by the desk so a bad address gets the usual failure reason
    email: str = Field(..., max_length=255, examples=["jane.doe@example.com"])
    display_name: str | None = Field(None, max_length=200, examples=["Jane Doe"])
    role: Role = Field(default=Role.READER, description="Role of the new account")


class ChangeUserRoleInput(ActorInput):
    """Input schema for the change_user_role tool."""

    user_id: str = Field(..., min_length=1, max_length=128, examples=["librarian_ali"])
    role: Role


@trace_tool("create_account")
async def create_account_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "create_account",
        arguments,
        CreateAccountInput,
        lambda desk, params: desk.create_account(
            params.user_id, params.email, params.role, params.display_name
        ),
    )


@trace_tool("change_user_role")
async def change_user_role_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    return await run_desk_operation(
        "change_user_role",
        arguments,
        ChangeUserRoleInput,
        lambda desk, params: desk.change_role(params.user_id, params.role),
    )


create_account = {
    "name": "create_account",
    "description": (
        "Create a library account. Librarians can add readers; admins can add "
        "readers, librarians and admins. The email must be unique."
    ),
    "inputSchema": CreateAccountInput.model_json_schema(),
    "handler": create_account_handler,
}

change_user_role = {
    "name": "change_user_role",
    "description": "Admin only. Change another account's role.",
    "inputSchema": ChangeUserRoleInput.model_json_schema(),
    "handler": change_user_role_handler,
}
