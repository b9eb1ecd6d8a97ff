"""Circulation Resources - Policy and Branch Access

Read-only context for clients deciding which tool to call.

Resources:
- library://policy - Effective circulation policy (settings over defaults)
- library://branches - Branches known to the library
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..config import get_config
from ..database.branch_repository import BranchRepository
from ..database.session import session_scope
from ..database.settings_repository import SettingsRepository
from ..observability import trace_resource

logger = logging.getLogger(__name__)


@trace_resource("policy")
async def get_policy_handler() -> dict[str, Any]:
    """Returns the policy checkout and return will apply right now."""
    try:
        with session_scope() as session:
            policy = SettingsRepository(session).load_policy(get_config().policy_defaults())
            return policy.model_dump()
    except Exception as e:
        logger.exception("Error in policy resource")
        raise ResourceError(f"Failed to load circulation policy: {e!s}") from e


@trace_resource("branches")
async def list_branches_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            branches = BranchRepository(session).get_all()
            return {
                "branches": [branch.model_dump(mode="json") for branch in branches],
                "total": len(branches),
            }
    except Exception as e:
        logger.exception("Error in branches resource")
        raise ResourceError(f"Failed to list branches: {e!s}") from e


circulation_resources: list[dict[str, Any]] = [
    {
        "uri": "library://policy",
        "name": "Circulation Policy",
        "description": (
            "Loan period, extension length, active loan limit, overdue blocking and "
            "late fine settings currently in force."
        ),
        "mime_type": "application/json",
        "handler": get_policy_handler,
    },
    {
        "uri": "library://branches",
        "name": "Branches",
        "description": "Library branches. Records without a branch are shared by all of them.",
        "mime_type": "application/json",
        "handler": list_branches_handler,
    },
]
