"""
Library Circulation MCP Server Models.

Pydantic v2 models used for validation, serialization and responses:
- Branch, Book, Member: catalog and directory records
- Loan, Reservation and their detail views
- Checkout/Return/Extend results returned by circulation tools
"""

from .catalog import Book, BookCreate, Branch, BranchCreate, Member, MemberCreate
from .circulation import (
    CheckoutRequest,
    CheckoutResult,
    ExtendResult,
    KeyMatch,
    Loan,
    LoanDetail,
    LoanStatusFilter,
    Reservation,
    ReservationDetail,
    ReservationStatus,
    ReturnRequest,
    ReturnResult,
)

__all__ = [
    "Book",
    "BookCreate",
    "Branch",
    "BranchCreate",
    "CheckoutRequest",
    "CheckoutResult",
    "ExtendResult",
    "KeyMatch",
    "Loan",
    "LoanDetail",
    "LoanStatusFilter",
    "Member",
    "MemberCreate",
    "Reservation",
    "ReservationDetail",
    "ReservationStatus",
    "ReturnRequest",
    "ReturnResult",
]
