"""
Availability ledger: the per-book count of copies on the shelf.

The stored ``books.available`` must always equal ``copies`` minus the open
loans on that book, and stay within ``[0, copies]``.

Write path:
- ``take_copy`` decrements with ``UPDATE ... WHERE available > 0`` and checks
  the row count, so two transactions can never both take the last copy.
- ``adjust_available`` applies any other delta, clamping to the valid range
  and logging the violation when a delta would leave it.
- Both run inside the caller's transaction, next to the loan row change
  that motivates them.

Read path:
- ``current_available`` trusts a stored non-negative value and otherwise
  derives it from open loans. The first write to such a book persists the
  derived value.

``find_drift`` and ``reconcile`` compare stored values against open loans
for books that were edited outside circulation.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ..errors import PolicyRejectedError
from .schema import Book, Loan
from .session import mcp_safe_query

logger = logging.getLogger(__name__)


class InvariantViolation(BaseModel):
    """A book whose stored availability disagrees with its open loans."""

    book_id: int
    title: str
    copies: int
    open_loans: int
    stored_available: int | None
    expected_available: int


def _expected(copies: int, open_loans: int) -> int:
    return min(max(copies - open_loans, 0), copies)


class AvailabilityLedger:
    def __init__(self, session: Session):
        self.session = session

    def count_open_loans(self, book_id: int) -> int:
        query = select(func.count(Loan.id)).where(
            Loan.book_id == book_id, Loan.return_date.is_(None)
        )
        return (
            mcp_safe_query(
                self.session, lambda s: s.execute(query).scalar(), "Failed to count open loans"
            )
            or 0
        )

    def current_available(self, book: Book) -> int:
        stored = book.available
        if isinstance(stored, int) and stored >= 0:
            return stored
        return _expected(book.copies, self.count_open_loans(book.id))

    def _materialize(self, book: Book) -> None:
        if book.available is not None:
            return
        derived = _expected(book.copies, self.count_open_loans(book.id))
        logger.info(
            "Book %s had no stored availability, derived %s from open loans", book.id, derived
        )
        self.session.execute(
            update(Book)
            .where(Book.id == book.id, Book.available.is_(None))
            .values(available=derived, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(book, attribute_names=["available"])

    def _apply(self, book: Book, delta: int, guard: ColumnElement[bool]) -> int:
        result = self.session.execute(
            update(Book)
            .where(Book.id == book.id, guard)
            .values(available=Book.available + delta, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def take_copy(self, book: Book) -> int:
        """
        Take one copy off the shelf for a new loan.

        Raises:
            PolicyRejectedError: ``out_of_stock`` when no copy is available
        """
        self._materialize(book)
        if self._apply(book, -1, Book.available > 0) == 0:
            raise PolicyRejectedError(
                f"No copies of book {book.id} are available",
                code="out_of_stock",
                details={"book_id": book.id, "copies": book.copies},
            )
        self.session.refresh(book, attribute_names=["available"])
        return book.available

    def release_copy(self, book: Book) -> int:
        """Put one copy back on the shelf after a return."""
        return self.adjust_available(book, 1)

    def adjust_available(self, book: Book, delta: int) -> int:
        """
        Apply ``delta`` to the stored availability, clamped to ``[0, copies]``.

        Returns the new stored value.
        """
        self._materialize(book)
        if delta == 0:
            return book.available

        if delta < 0:
            guard = Book.available + delta >= 0
        else:
            guard = Book.available + delta <= Book.copies

        if self._apply(book, delta, guard) == 0:
            bound: Any = 0 if delta < 0 else Book.copies
            logger.warning(
                "Availability for book %s would leave [0, %s] (stored=%s, delta=%+d); clamping",
                book.id,
                book.copies,
                book.available,
                delta,
            )
            self.session.execute(
                update(Book)
                .where(Book.id == book.id)
                .values(available=bound, updated_at=datetime.now())
                .execution_options(synchronize_session=False)
            )

        self.session.refresh(book, attribute_names=["available"])
        return book.available

    def find_drift(
        self, branch_filter: ColumnElement[bool] | None = None
    ) -> list[InvariantViolation]:
        """List books whose stored availability disagrees with their open loans."""
        open_counts = (
            select(Loan.book_id, func.count(Loan.id).label("open_loans"))
            .where(Loan.return_date.is_(None))
            .group_by(Loan.book_id)
            .subquery()
        )
        open_loans = func.coalesce(open_counts.c.open_loans, 0)
        expected = case(
            (Book.copies - open_loans < 0, 0),
            else_=Book.copies - open_loans,
        )
        query = (
            select(Book.id, Book.title, Book.copies, Book.available, open_loans)
            .outerjoin(open_counts, open_counts.c.book_id == Book.id)
            .where((Book.available.is_(None)) | (Book.available != expected))
            .order_by(Book.id)
        )
        if branch_filter is not None:
            query = query.where(branch_filter)

        rows = mcp_safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to scan availability"
        )
        return [
            InvariantViolation(
                book_id=book_id,
                title=title,
                copies=copies,
                open_loans=loans,
                stored_available=stored,
                expected_available=_expected(copies, loans),
            )
            for book_id, title, copies, stored, loans in rows
        ]

    def reconcile(
        self, branch_filter: ColumnElement[bool] | None = None
    ) -> list[InvariantViolation]:
        """Rewrite drifted availability from open loans. Returns what was fixed."""
        violations = self.find_drift(branch_filter)
        now = datetime.now()
        for violation in violations:
            if violation.open_loans > violation.copies:
                logger.error(
                    "Book %s has %s open loans but only %s copies",
                    violation.book_id,
                    violation.open_loans,
                    violation.copies,
                )
            logger.warning(
                "Reconciling book %s availability %s -> %s",
                violation.book_id,
                violation.stored_available,
                violation.expected_available,
            )
            self.session.execute(
                update(Book)
                .where(Book.id == violation.book_id)
                .values(available=violation.expected_available, updated_at=now)
            )
        return violations
