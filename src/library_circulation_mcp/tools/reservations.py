"""
Reservation tools for the Library Circulation MCP Server.

1. reserve_book: join the hold queue for a book
2. cancel_reservation: leave the queue
3. list_reservations: branch-scoped queue listing with positions

Reservations are fulfilled only by checkout_book, when the member at the
head of the queue borrows the book.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..database.reservation_repository import ReservationRepository
from ..database.session import session_scope
from ..errors import CirculationError
from ..models import ReservationStatus
from ..observability import trace_repository_operation, trace_tool
from .common import (
    CallerInput,
    error_response,
    internal_error_response,
    invalid_input_response,
    success_response,
)

logger = logging.getLogger(__name__)


class ReserveBookInput(BaseModel):
    caller: CallerInput
    book_id: int = Field(..., ge=1)
    member_id: int = Field(..., ge=1)


@trace_tool("reserve_book")
async def reserve_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ReserveBookInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid reservation parameters: %s", e)
        return invalid_input_response("reservation", e)

    try:
        with session_scope() as session, trace_repository_operation(
            "reservations", "create", "reservations"
        ):
            repo = ReservationRepository(session)
            reservation = repo.create(params.caller.to_caller(), params.book_id, params.member_id)
            position = len(repo.queue(params.book_id))
    except CirculationError as e:
        logger.info("Reservation rejected (%s): %s", e.code, e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in reserve_book tool")
        return internal_error_response("Reservation", e)

    message = (
        f"Reservation {reservation.id} created for book {reservation.book_id}. "
        f"Queue position: {position}"
    )
    data = reservation.model_dump(mode="json")
    data["queue_position"] = position
    return success_response(message, {"reservation": data})


class CancelReservationInput(BaseModel):
    caller: CallerInput
    reservation_id: int = Field(..., ge=1)


@trace_tool("cancel_reservation")
async def cancel_reservation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = CancelReservationInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("cancellation", e)

    try:
        with session_scope() as session, trace_repository_operation(
            "reservations", "cancel", "reservations"
        ):
            reservation = ReservationRepository(session).cancel(
                params.caller.to_caller(), params.reservation_id
            )
    except CirculationError as e:
        logger.info("Cancellation rejected (%s): %s", e.code, e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in cancel_reservation tool")
        return internal_error_response("Cancellation", e)

    return success_response(
        f"Reservation {reservation.id} is {reservation.status.value}",
        {"ok": True, "reservation": reservation.model_dump(mode="json")},
    )


class ListReservationsInput(BaseModel):
    caller: CallerInput
    branch: str | int | None = Field(
        default=None,
        description="Admins only: 'all', a branch id, or 'null' for shared records",
    )
    status: ReservationStatus | None = Field(
        default=ReservationStatus.ACTIVE, description="Omit or null for every status"
    )
    book_id: int | None = Field(default=None, ge=1)


@trace_tool("list_reservations")
async def list_reservations_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ListReservationsInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("list_reservations", e)

    try:
        with session_scope() as session:
            reservations = ReservationRepository(session).list_reservations(
                params.caller.to_caller(),
                branch=params.branch,
                status=params.status,
                book_id=params.book_id,
            )
    except CirculationError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in list_reservations tool")
        return internal_error_response("Reservation listing", e)

    return success_response(
        f"Found {len(reservations)} reservation(s)",
        {"reservations": [r.model_dump(mode="json") for r in reservations]},
    )


reserve_book = {
    "name": "reserve_book",
    "description": (
        "Place a member in the reservation queue for a book. A member may hold one "
        "active reservation per book. While the queue is non-empty only its head "
        "can check the book out."
    ),
    "inputSchema": ReserveBookInput.model_json_schema(),
    "handler": reserve_book_handler,
}

cancel_reservation = {
    "name": "cancel_reservation",
    "description": (
        "Cancel an active reservation. Fulfilled or already cancelled reservations "
        "are left as they are, so repeating the call is harmless."
    ),
    "inputSchema": CancelReservationInput.model_json_schema(),
    "handler": cancel_reservation_handler,
}

list_reservations = {
    "name": "list_reservations",
    "description": "List reservations visible to the caller's branch with queue positions.",
    "inputSchema": ListReservationsInput.model_json_schema(),
    "handler": list_reservations_handler,
}
