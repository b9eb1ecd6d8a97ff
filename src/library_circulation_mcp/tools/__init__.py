"""
MCP Tools for the Library Circulation Server.

Tools are the state-changing side of the server: checkouts, returns,
extensions and reservations, plus read tools that need a caller identity
for branch scoping.
"""

from .circulation import check_loan, checkout_book, extend_loan, list_loans, return_book
from .maintenance import reconcile_availability
from .reservations import cancel_reservation, list_reservations, reserve_book

all_tools = [
    list_loans,
    checkout_book,
    return_book,
    extend_loan,
    check_loan,
    reserve_book,
    cancel_reservation,
    list_reservations,
    reconcile_availability,
]

__all__ = [
    "all_tools",
    "cancel_reservation",
    "check_loan",
    "checkout_book",
    "extend_loan",
    "list_loans",
    "list_reservations",
    "reconcile_availability",
    "reserve_book",
    "return_book",
]
