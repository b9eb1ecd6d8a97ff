"""
Shared pieces for circulation tool handlers.

Every handler returns the same MCP response shape:

- success: ``{"content": [{"type": "text", ...}], "data": {...}}``
- failure: ``{"isError": True, "content": [...], "error": {code, status, message, details}}``

The ``error`` object lets clients branch on a stable ``code`` instead of
parsing message text.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from pydantic import BaseModel, EmailStr, Field, ValidationError
from sqlalchemy.orm import Session

from ..circulation.policy import PolicyConfig
from ..circulation.scope import Caller, CallerRole
from ..config import get_config
from ..database.settings_repository import SettingsRepository
from ..errors import CirculationError


class CallerInput(BaseModel):
    """
    Identity of the librarian invoking a tool.

    The server does not authenticate this object: role and branch are taken
    as sent. Deploy behind a gateway that authenticates the librarian and
    fills in their identity.
    """

    email: EmailStr = Field(
        ...,
        description="Email of the staff member performing the operation",
        examples=["librarian@school.org"],
    )
    role: CallerRole = Field(
        default=CallerRole.STAFF,
        description="'admin' may work across branches; 'staff' is limited to their home branch",
    )
    branch_id: int | None = Field(
        default=None,
        description="Home branch of the caller; omit for callers without a branch",
    )

    def to_caller(self) -> Caller:
        return Caller(email=self.email, role=self.role, branch_id=self.branch_id)


def load_policy(session: Session) -> PolicyConfig:
    """Current policy: settings table over environment defaults."""
    return SettingsRepository(session).load_policy(get_config().policy_defaults())


def success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": message}],
        "data": data,
    }


def error_response(error: CirculationError) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": error.message}],
        "error": error.to_dict(),
    }


def invalid_input_response(operation: str, error: ValidationError) -> dict[str, Any]:
    details = [
        {"field": ".".join(str(part) for part in item["loc"]), "message": item["msg"]}
        for item in error.errors()
    ]
    return {
        "isError": True,
        "content": [{"type": "text", "text": f"Invalid {operation} parameters: {error}"}],
        "error": {
            "code": "invalid_input",
            "status": 422,
            "message": f"Invalid {operation} parameters",
            "details": {"errors": details},
        },
    }


def internal_error_response(operation: str, error: Exception) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": f"{operation} failed: {error!s}"}],
        "error": {
            "code": "internal_error",
            "status": 500,
            "message": f"{operation} failed",
            "details": {},
        },
    }


class CirculationTool(Tool):
    """
    A circulation handler published under its input model's JSON schema.

    Clients see the model's fields (``caller``, ``isbn`` and so on) as the
    tool's arguments. The handler receives them as one dict and validates
    them itself, so bad input still comes back as an ``invalid_input``
    response rather than a protocol error.
    """

    handler: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]] = Field(exclude=True)

    @classmethod
    def from_definition(cls, definition: dict[str, Any]) -> "CirculationTool":
        return cls(
            name=definition["name"],
            description=definition["description"],
            parameters=definition["inputSchema"],
            handler=definition["handler"],
        )

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        response = await self.handler(arguments)
        return ToolResult(content=response["content"][0]["text"], structured_content=response)
