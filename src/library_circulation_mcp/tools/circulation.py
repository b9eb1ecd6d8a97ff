"""
Circulation tools for the Library Circulation MCP Server.

Tools that move books in and out of the library:
1. checkout_book: lend a copy to a member
2. return_book: close a loan, computing any late fine
3. extend_loan: push the due date of an open loan
4. check_loan: snapshot of an open loan for a book and member
5. list_loans: branch-scoped loan listing with status and text filters

Each call is one transaction. A rejected operation rolls back everything it
touched and returns a structured error with a stable code.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..database.circulation_repository import CirculationRepository
from ..database.repository import PaginationParams
from ..database.session import session_scope
from ..errors import CirculationError
from ..models import CheckoutRequest, LoanStatusFilter, ReturnRequest
from ..observability import trace_repository_operation, trace_tool
from .common import (
    CallerInput,
    error_response,
    internal_error_response,
    invalid_input_response,
    load_policy,
    success_response,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CHECKOUT
# =============================================================================


class CheckoutBookInput(BaseModel):
    """
    Input schema for the checkout_book tool.

    The book is named by ``book_id`` or ``isbn`` and the member by
    ``member_id`` or ``student_no``. Ids win when both are given.
    """

    caller: CallerInput
    book_id: int | None = Field(default=None, ge=1, description="Database id of the book")
    isbn: str | None = Field(
        default=None,
        description="ISBN as printed or scanned; hyphens and spaces are ignored",
        examples=["978-0-306-40615-7"],
    )
    member_id: int | None = Field(default=None, ge=1, description="Database id of the member")
    student_no: str | None = Field(default=None, description="Member's student number")
    due_date: str | None = Field(
        default=None,
        description="Optional due date: YYYY-MM-DD, DD.MM.YYYY or DD/MM/YYYY",
        examples=["2024-06-30", "30.06.2024"],
    )


@trace_tool("checkout_book")
async def checkout_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the checkout_book tool.

    Args:
        arguments: Raw arguments from MCP tools/call request

    Returns:
        Structured response with the new loan or error information
    """
    try:
        params = CheckoutBookInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid checkout parameters: %s", e)
        return invalid_input_response("checkout", e)

    try:
        with session_scope() as session, trace_repository_operation(
            "circulation", "checkout", "loans"
        ):
            repo = CirculationRepository(session, load_policy(session))
            result = repo.checkout(
                params.caller.to_caller(),
                CheckoutRequest(
                    book_id=params.book_id,
                    isbn=params.isbn,
                    member_id=params.member_id,
                    student_no=params.student_no,
                    due_date=params.due_date,
                ),
            )
    except CirculationError as e:
        logger.info("Checkout rejected (%s): %s", e.code, e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in checkout_book tool")
        return internal_error_response("Checkout", e)

    message = (
        f"Loan {result.loan_id} created for book {result.book_id}. "
        f"Due date: {result.due_date.strftime('%B %d, %Y')}"
    )
    if result.fulfilled_reservation_id is not None:
        message += f" (fulfilled reservation {result.fulfilled_reservation_id})"
    return success_response(message, {"checkout": result.model_dump(mode="json")})


# =============================================================================
# RETURN
# =============================================================================


class ReturnBookInput(BaseModel):
    """Input schema for the return_book tool."""

    caller: CallerInput
    loan_id: int | None = Field(default=None, ge=1, description="Id of the loan to close")
    isbn: str | None = Field(default=None, description="ISBN of the returned book")
    student_no: str | None = Field(default=None, description="Student number of the borrower")

    @model_validator(mode="after")
    def require_reference(self) -> "ReturnBookInput":
        if self.loan_id is None and not (self.isbn and self.student_no):
            raise ValueError("Provide loan_id, or both isbn and student_no")
        return self


@trace_tool("return_book")
async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ReturnBookInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid return parameters: %s", e)
        return invalid_input_response("return", e)

    try:
        with session_scope() as session, trace_repository_operation(
            "circulation", "return", "loans"
        ):
            repo = CirculationRepository(session, load_policy(session))
            result = repo.return_loan(
                params.caller.to_caller(),
                ReturnRequest(
                    loan_id=params.loan_id, isbn=params.isbn, student_no=params.student_no
                ),
            )
    except CirculationError as e:
        logger.info("Return rejected (%s): %s", e.code, e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in return_book tool")
        return internal_error_response("Return", e)

    message = f"Loan {result.loan_id} returned."
    if result.days_late:
        message += f" {result.days_late} day(s) late."
    if result.fine_cents:
        message += f" Fine: {result.fine_cents / 100:.2f}."
    return success_response(message, {"return": result.model_dump(mode="json")})


# =============================================================================
# EXTEND
# =============================================================================


class ExtendLoanInput(BaseModel):
    caller: CallerInput
    loan_id: int = Field(..., ge=1)
    days: int | None = Field(
        default=None,
        description="Days to add; missing or non-positive values use the library default",
    )


@trace_tool("extend_loan")
async def extend_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ExtendLoanInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid extend parameters: %s", e)
        return invalid_input_response("extend", e)

    try:
        with session_scope() as session, trace_repository_operation(
            "circulation", "extend", "loans"
        ):
            repo = CirculationRepository(session, load_policy(session))
            result = repo.extend(params.caller.to_caller(), params.loan_id, params.days)
    except CirculationError as e:
        logger.info("Extend rejected (%s): %s", e.code, e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in extend_loan tool")
        return internal_error_response("Extend", e)

    message = (
        f"Loan {result.loan_id} extended by {result.days_added} day(s). "
        f"New due date: {result.due_date.isoformat()}"
    )
    return success_response(message, {"extension": result.model_dump(mode="json")})


# =============================================================================
# CHECK LOAN
# =============================================================================


class CheckLoanInput(BaseModel):
    caller: CallerInput
    isbn: str = Field(..., min_length=1)
    student_no: str = Field(..., min_length=1)


@trace_tool("check_loan")
async def check_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = CheckLoanInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("check_loan", e)

    try:
        with session_scope() as session:
            repo = CirculationRepository(session, load_policy(session))
            loan = repo.check_loan(params.caller.to_caller(), params.isbn, params.student_no)
    except CirculationError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in check_loan tool")
        return internal_error_response("Loan check", e)

    message = f"'{loan.book_title}' is on loan to {loan.member_name} until {loan.due_date}"
    if loan.is_overdue:
        message += f" ({loan.days_overdue} day(s) overdue)"
    return success_response(message, {"loan": loan.model_dump(mode="json")})


# =============================================================================
# LIST LOANS
# =============================================================================


class ListLoansInput(BaseModel):
    caller: CallerInput
    branch: str | int | None = Field(
        default=None,
        description="Admins only: 'all', a branch id, or 'null' for shared records",
    )
    status: LoanStatusFilter = LoanStatusFilter.ALL
    query: str | None = Field(
        default=None, description="Matches book title, ISBN, member name or student number"
    )
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


@trace_tool("list_loans")
async def list_loans_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ListLoansInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("list_loans", e)

    try:
        with session_scope() as session:
            repo = CirculationRepository(session, load_policy(session))
            page = repo.list_loans(
                params.caller.to_caller(),
                branch=params.branch,
                status=params.status,
                query_text=params.query,
                pagination=PaginationParams(page=params.page, page_size=params.page_size),
            )
    except CirculationError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Unexpected error in list_loans tool")
        return internal_error_response("Loan listing", e)

    message = f"Found {page.total} loan(s); showing page {page.page} of {max(page.total_pages, 1)}"
    return success_response(message, {"loans": page.model_dump(mode="json")})


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

checkout_book = {
    "name": "checkout_book",
    "description": (
        "Check out a book to a member. Validates branch access, member eligibility "
        "(not blocked, no overdue loans, under the loan limit), availability and the "
        "reservation queue, then creates the loan and takes one copy off the shelf."
    ),
    "inputSchema": CheckoutBookInput.model_json_schema(),
    "handler": checkout_book_handler,
}

return_book = {
    "name": "return_book",
    "description": (
        "Return a loaned book by loan id or by ISBN and student number. Closes the loan, "
        "puts the copy back on the shelf and reports any late fine."
    ),
    "inputSchema": ReturnBookInput.model_json_schema(),
    "handler": return_book_handler,
}

extend_loan = {
    "name": "extend_loan",
    "description": "Extend the due date of an open loan by a number of days.",
    "inputSchema": ExtendLoanInput.model_json_schema(),
    "handler": extend_loan_handler,
}

check_loan = {
    "name": "check_loan",
    "description": "Look up the open loan for a book (ISBN) and member (student number).",
    "inputSchema": CheckLoanInput.model_json_schema(),
    "handler": check_loan_handler,
}

list_loans = {
    "name": "list_loans",
    "description": (
        "List loans visible to the caller's branch, newest first. Filter by status "
        "(active, returned, overdue, all) and free text."
    ),
    "inputSchema": ListLoansInput.model_json_schema(),
    "handler": list_loans_handler,
}
