"""
Availability maintenance tool.

reconcile_availability reports books whose stored availability disagrees
with their open loans, typically after a catalog import or a manual edit
to the copy count. With ``apply`` set it rewrites the stored values.
Staff reach their own branch and shared books; admins may target any
branch.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..circulation.scope import scope_filter
from ..database.availability_ledger import AvailabilityLedger
from ..database.schema import Book
from ..database.session import session_scope
from ..errors import CirculationError
from ..observability import trace_repository_operation, trace_tool
from .common import (
    CallerInput,
    error_response,
    internal_error_response,
    invalid_input_response,
    success_response,
)

logger = logging.getLogger(__name__)


class ReconcileAvailabilityInput(BaseModel):
    caller: CallerInput
    branch: str | int | None = Field(
        default=None,
        description="Admins only: 'all', a branch id, or 'null' for shared books",
    )
    apply: bool = Field(default=False, description="Rewrite drifted values instead of reporting")


@trace_tool("reconcile_availability")
async def reconcile_availability_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ReconcileAvailabilityInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("reconcile", e)

    try:
        with session_scope() as session, trace_repository_operation(
            "ledger", "reconcile", "books"
        ) as span:
            ledger = AvailabilityLedger(session)
            predicate = scope_filter(params.caller.to_caller(), params.branch, Book.branch_id)
            if params.apply:
                violations = ledger.reconcile(predicate)
            else:
                violations = ledger.find_drift(predicate)
            span.set_attribute("ledger.drifted_books", len(violations))
    except CirculationError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in reconcile_availability tool")
        return internal_error_response("Reconcile", e)

    verb = "Reconciled" if params.apply else "Found"
    return success_response(
        f"{verb} {len(violations)} book(s) with drifted availability",
        {
            "applied": params.apply,
            "violations": [v.model_dump(mode="json") for v in violations],
        },
    )


reconcile_availability = {
    "name": "reconcile_availability",
    "description": (
        "Compare each book's stored availability with copies minus open loans. "
        "Reports the differences, and fixes them when apply is true."
    ),
    "inputSchema": ReconcileAvailabilityInput.model_json_schema(),
    "handler": reconcile_availability_handler,
}
